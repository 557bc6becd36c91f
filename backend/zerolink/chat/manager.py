"""Session registry and fan-out for live WebSocket connections.

Every live connection is represented by a Session value held in the
SessionRegistry; the WebSocket object itself is never annotated. Fan-out
scans all sessions and keeps those whose (user, room) watches the thread an
event belongs to.

Key features:
    - One shared thread-match predicate for messages and typing
    - Concurrent delivery with asyncio.gather()
    - Automatic dead connection cleanup
    - Per-session buffering until history replay has been sent

Thread Safety:
    Designed for a single asyncio event loop. Registry mutations never await,
    so they are atomic with respect to other connection tasks, and every scan
    works on a snapshot.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from zerolink.auth.verifier import VerifiedIdentity
from zerolink.store.schemas import GLOBAL_ROOM

logger = logging.getLogger(__name__)


def watches_thread(conn_user: str, conn_room: str, sender: str, recipient: str) -> bool:
    """Return True if a session (conn_user, conn_room) observes sender -> recipient.

    A session watches the thread when it is the sender's own view of it, the
    recipient's view of it, or, for the global room, any session currently
    viewing the global room.
    """
    if conn_user == sender and conn_room == recipient:
        return True
    if conn_user == recipient and conn_room == sender:
        return True
    return recipient == GLOBAL_ROOM and conn_room == GLOBAL_ROOM


@dataclass(eq=False)
class Session:
    """One authenticated live connection.

    Attributes:
        websocket: Transport handle (anything with an async ``send_json``).
        user_id: Identity label the conversation threads are keyed by.
        room_id: ``"global"`` or a peer user id; fixed for the session.
        principal: Verified identity behind the token.
        ready: False until history replay has been sent.
    """
    websocket: Any
    user_id: str
    room_id: str = GLOBAL_ROOM
    principal: Optional[VerifiedIdentity] = None
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ready: bool = False
    pending: List[dict] = field(default_factory=list, repr=False)


class SessionRegistry:
    """Table of all live sessions plus the broadcast primitives."""

    def __init__(self) -> None:
        # session_id -> Session
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session: Session) -> bool:
        return session.session_id in self._sessions

    def add(self, session: Session) -> Session:
        """Register a session."""
        self._sessions[session.session_id] = session
        logger.info(
            f"[Registry] + {session.user_id} in room {session.room_id} "
            f"({len(self._sessions)} live)"
        )
        return session

    def remove(self, session_id: str) -> Optional[Session]:
        """Deregister a session; unknown ids are ignored."""
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info(
                f"[Registry] - {session.user_id} from room {session.room_id} "
                f"({len(self._sessions)} live)"
            )
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def sessions(self) -> List[Session]:
        """Snapshot of all live sessions, in no particular order."""
        return list(self._sessions.values())

    def sessions_for_user(self, user_id: str) -> List[Session]:
        return [s for s in self.sessions() if s.user_id == user_id]

    def select(
        self,
        sender: str,
        recipient: str,
        exclude: Optional[Session] = None,
    ) -> List[Session]:
        """Return every session watching the sender -> recipient thread."""
        return [
            s for s in self.sessions()
            if s is not exclude and watches_thread(s.user_id, s.room_id, sender, recipient)
        ]

    # =========================================================================
    # Delivery
    # =========================================================================

    async def send(self, session: Session, payload: dict) -> bool:
        """Send to one session, buffering while it is not ready yet."""
        if not session.ready:
            session.pending.append(payload)
            return True
        return await self._safe_send(session, payload)

    async def deliver(self, sessions: Iterable[Session], payload: dict) -> List[Session]:
        """Send *payload* to *sessions* concurrently.

        Sessions whose send fails are removed from the registry.

        Returns:
            The sessions the payload was handed to.
        """
        targets = list(sessions)
        if not targets:
            return []

        results = await asyncio.gather(
            *[self.send(session, payload) for session in targets],
            return_exceptions=True
        )

        delivered = []
        for session, ok in zip(targets, results):
            if ok is True:
                delivered.append(session)
            else:
                self.remove(session.session_id)
                logger.debug(f"Removed dead connection for {session.user_id}")
        return delivered

    async def mark_ready(self, session: Session, replayed_ids: Set[str]) -> None:
        """Flush buffered events and start sending directly.

        Buffered ``message`` events whose id is already in the replayed
        history are dropped so the client sees each message once.
        """
        while session.pending:
            payload = session.pending.pop(0)
            if payload.get("type") == "message":
                if payload.get("message", {}).get("_id") in replayed_ids:
                    continue
            if not await self._safe_send(session, payload):
                self.remove(session.session_id)
                return
        session.ready = True

    async def _safe_send(self, session: Session, payload: dict) -> bool:
        """Send to a WebSocket, returning False instead of raising."""
        try:
            await session.websocket.send_json(payload)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to {session.user_id}: {e}")
            return False
