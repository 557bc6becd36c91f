"""Inbound event handling: validate, persist, fan out.

Protocol Message Types:
    - getRooms: Reply with a fresh room list (sender only)
    - typing: Relay to the other sessions watching the sender's thread
    - sendMessage: Persist a text message and broadcast it
    - sendMedia: Persist a media message and broadcast it

Malformed events are logged and dropped. Any other failure aborts only
that event; the originating session gets a best-effort error event and the
connection stays open.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from zerolink.errors import MalformedEvent, PersistenceFailure
from zerolink.store.base import PersistenceStore
from zerolink.store.schemas import GLOBAL_ROOM, Message

from .manager import Session, SessionRegistry
from .rooms import RoomResolver
from .schemas import (
    ErrorOut,
    GetRoomsEvent,
    MessageOut,
    RoomsOut,
    SendMediaEvent,
    SendMessageEvent,
    TypingEvent,
    TypingOut,
    parse_event,
    to_payload,
)

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """What handling one event did.

    Attributes:
        persisted: The stored message, for sendMessage/sendMedia.
        delivered_to: Sessions the resulting event was handed to.
    """
    persisted: Optional[Message] = None
    delivered_to: List[Session] = field(default_factory=list)


class MessageDispatcher:
    """Routes parsed events to their handlers.

    Args:
        registry: Live sessions to fan out to.
        store: Persistence store for messages and conversations.
        resolver: Room list builder.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: PersistenceStore,
        resolver: RoomResolver,
    ) -> None:
        self._registry = registry
        self._store = store
        self._resolver = resolver
        self._handlers = {
            GetRoomsEvent: self._on_get_rooms,
            TypingEvent: self._on_typing,
            SendMessageEvent: self._on_send,
            SendMediaEvent: self._on_send,
        }

    async def handle(self, session: Session, raw: Union[str, bytes]) -> DispatchResult:
        """Handle one raw frame from *session*. Never raises for bad input."""
        try:
            event = parse_event(raw)
        except MalformedEvent as exc:
            logger.warning(f"[Dispatch] Dropped malformed event from {session.user_id}: {exc}")
            return DispatchResult()

        handler = self._handlers[type(event)]
        try:
            return await handler(session, event)
        except PersistenceFailure as exc:
            logger.error(
                f"[Dispatch] {event.type} from {session.user_id} failed: {exc}"
            )
        except Exception:
            logger.exception(
                f"[Dispatch] Unexpected error handling {event.type} from {session.user_id}"
            )
        await self._registry.send(
            session, to_payload(ErrorOut(error=f"{event.type} failed, please retry"))
        )
        return DispatchResult()

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _on_get_rooms(self, session: Session, event: GetRoomsEvent) -> DispatchResult:
        rooms = await asyncio.to_thread(self._resolver.build_room_list, session.user_id)
        await self._registry.send(session, to_payload(RoomsOut(rooms=rooms)))
        return DispatchResult(delivered_to=[session])

    async def _on_typing(self, session: Session, event: TypingEvent) -> DispatchResult:
        targets = self._registry.select(session.user_id, session.room_id, exclude=session)
        payload = to_payload(TypingOut(username=event.username or session.user_id))
        delivered = await self._registry.deliver(targets, payload)
        return DispatchResult(delivered_to=delivered)

    def _ensure_conversation(self, sender: str, recipient: str) -> bool:
        """Lookup-or-create the sender/recipient conversation; True if created."""
        if recipient in (GLOBAL_ROOM, sender):
            return False
        if self._store.find_conversation(sender, recipient) is not None:
            return False
        self._store.create_conversation(sender, recipient)
        logger.info(f"[Dispatch] New DM conversation between {sender} and {recipient}")
        return True

    async def _on_send(
        self,
        session: Session,
        event: Union[SendMessageEvent, SendMediaEvent],
    ) -> DispatchResult:
        sender = session.user_id
        recipient = event.recipient

        draft = Message(username=sender, receivername=recipient, text=event.text)
        if isinstance(event, SendMediaEvent):
            draft.mediaUrl = event.mediaUrl
            draft.mediaType = event.mediaType
        message = await asyncio.to_thread(self._store.insert_message, draft)
        created = await asyncio.to_thread(self._ensure_conversation, sender, recipient)

        targets = self._registry.select(sender, recipient)
        if any(target.user_id != sender for target in targets):
            await asyncio.to_thread(self._store.mark_delivered, message.id)
            message = message.model_copy(update={"delivered": True})

        logger.info(
            f"[Dispatch] {event.type} {message.id} {sender} -> {recipient}: "
            f"{len(targets)} target(s)"
        )
        delivered = await self._registry.deliver(targets, to_payload(MessageOut(message=message)))

        if created:
            await self.push_rooms(sender, recipient)
        return DispatchResult(persisted=message, delivered_to=delivered)

    async def push_rooms(self, *user_ids: str) -> None:
        """Send a fresh room list to every live session of each user."""
        sends = []
        for user_id in dict.fromkeys(user_ids):
            sessions = self._registry.sessions_for_user(user_id)
            if not sessions:
                continue
            rooms = await asyncio.to_thread(self._resolver.build_room_list, user_id)
            sends.append(self._registry.deliver(sessions, to_payload(RoomsOut(rooms=rooms))))
        if sends:
            await asyncio.gather(*sends)
