"""Connection lifecycle: handshake, replay, message loop, teardown.

Protocol Flow:
    1. Client connects with ?token=..&userId=..&roomId=..
       → Missing token/userId or rejected token: close 4001
    2. Server ensures a directory entry for the verified identity
    3. Server sends: {type: "rooms", rooms: [...]}
    4. Server sends: {type: "history", messages: [...]}
       → Session becomes ready; events buffered meanwhile are flushed
    5. Client events are handled in receive order until the socket closes
    6. On close the session is deregistered; nothing is retried
"""
import asyncio
import logging
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect

from zerolink.auth.verifier import IdentityVerifier, VerifiedIdentity, verify_with_timeout
from zerolink.errors import AuthFailure, PersistenceFailure
from zerolink.store.base import PersistenceStore
from zerolink.store.schemas import GLOBAL_ROOM, UserRecord

from .dispatcher import MessageDispatcher
from .manager import Session, SessionRegistry
from .rooms import RoomResolver
from .schemas import (
    AUTH_FAILURE_CLOSE_CODE,
    INTERNAL_ERROR_CLOSE_CODE,
    HistoryOut,
    RoomsOut,
    to_payload,
)

logger = logging.getLogger(__name__)


class ConnectionLifecycle:
    """Runs one WebSocket from accept to teardown."""

    def __init__(
        self,
        registry: SessionRegistry,
        store: PersistenceStore,
        resolver: RoomResolver,
        dispatcher: MessageDispatcher,
        verifier: IdentityVerifier,
        verify_timeout: float = 5.0,
    ) -> None:
        self._registry = registry
        self._store = store
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._verifier = verifier
        self._verify_timeout = verify_timeout

    async def authenticate(self, token: Optional[str], user_id: Optional[str]) -> VerifiedIdentity:
        """Check handshake parameters and verify the token.

        Raises:
            AuthFailure: Missing token or identity label, rejected token, or
                verification timeout.
        """
        if not token or not user_id:
            raise AuthFailure("Missing credentials")
        return await verify_with_timeout(self._verifier, token, self._verify_timeout)

    def ensure_user(self, principal: VerifiedIdentity) -> UserRecord:
        """Lookup-or-create the directory entry for *principal*."""
        existing = self._store.find_user(principal.uid)
        if existing is not None:
            return existing
        user = self._store.create_user(
            UserRecord(
                uid=principal.uid,
                email=principal.email,
                display_name=principal.name or principal.email,
            )
        )
        logger.info(f"[WS] New user created: {principal.email or principal.uid}")
        return user

    async def open_session(self, session: Session) -> None:
        """Register *session*, send rooms and history, then mark it ready."""
        await asyncio.to_thread(self.ensure_user, session.principal)
        self._registry.add(session)

        rooms = await asyncio.to_thread(self._resolver.build_room_list, session.user_id)
        await session.websocket.send_json(to_payload(RoomsOut(rooms=rooms)))

        history = await asyncio.to_thread(
            self._resolver.load_history, session.user_id, session.room_id
        )
        await session.websocket.send_json(to_payload(HistoryOut(messages=history)))

        await self._registry.mark_ready(session, {m.id for m in history})
        logger.info(
            f"[WS] {session.user_id} ready in room {session.room_id} "
            f"({len(history)} message(s) replayed)"
        )

    async def serve(
        self,
        websocket: WebSocket,
        token: Optional[str],
        user_id: Optional[str],
        room_id: Optional[str] = None,
    ) -> None:
        """Own *websocket* for its whole lifetime."""
        await websocket.accept()

        try:
            principal = await self.authenticate(token, user_id)
        except AuthFailure as exc:
            logger.warning(f"[WS] Rejecting connection for userId={user_id!r}: {exc}")
            await websocket.close(code=AUTH_FAILURE_CLOSE_CODE, reason=str(exc)[:120])
            return

        session = Session(
            websocket=websocket,
            user_id=user_id,
            room_id=room_id or GLOBAL_ROOM,
            principal=principal,
        )
        logger.info(
            f"[WS] Authenticated {principal.email or principal.uid} as {user_id} "
            f"in room {session.room_id}"
        )

        try:
            try:
                await self.open_session(session)
            except PersistenceFailure as exc:
                logger.error(f"[WS] Handshake failed for {user_id}: {exc}")
                await websocket.close(code=INTERNAL_ERROR_CLOSE_CODE)
                return

            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await self._dispatcher.handle(session, raw)
        except WebSocketDisconnect:
            pass
        finally:
            self._registry.remove(session.session_id)
            logger.info(f"[WS] {user_id} disconnected from room {session.room_id}")
