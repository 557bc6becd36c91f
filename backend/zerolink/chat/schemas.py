"""WebSocket protocol models.

Inbound events (client -> server) form a discriminated union on ``type``:
    - getRooms: Request a fresh room list
    - typing: Typing indicator for the session's current thread
    - sendMessage: Text message
    - sendMedia: Media message (URL from POST /api/upload)

Outbound events (server -> client):
    - rooms: Room summaries, global first
    - history: Replay for the session's room, oldest first
    - message: One persisted message
    - typing: Someone in the thread is typing
    - error: Best-effort failure notice for the originating session
"""
import json
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from zerolink.errors import MalformedEvent
from zerolink.store.schemas import GLOBAL_ROOM, MediaKind, Message

# Close code telling the client to force a re-login instead of reconnecting
AUTH_FAILURE_CLOSE_CODE = 4001

# Close code for a server-side failure during the handshake
INTERNAL_ERROR_CLOSE_CODE = 1011

GLOBAL_ROOM_NAME = "Global Chat"


# =============================================================================
# Inbound Events
# =============================================================================


class _Inbound(BaseModel):
    """Base for inbound events: every string field must encode as UTF-8."""

    @field_validator("*")
    @classmethod
    def _utf8_only(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                value.encode("utf-8")
            except UnicodeEncodeError as exc:
                raise ValueError("string is not valid UTF-8") from exc
        return value


class _Addressed(_Inbound):
    """Fields shared by events that carry a recipient."""
    roomId: Optional[str] = Field(default=None, description="Room the client is viewing")
    receivername: Optional[str] = Field(default=None, description="Explicit recipient")
    username: str = Field(default="", description="Sender display label")

    @property
    def recipient(self) -> str:
        """Resolved recipient: receivername, then roomId, then the global room."""
        return self.receivername or self.roomId or GLOBAL_ROOM


class GetRoomsEvent(_Inbound):
    type: Literal["getRooms"]


class TypingEvent(_Inbound):
    type: Literal["typing"]
    username: str = ""


class SendMessageEvent(_Addressed):
    type: Literal["sendMessage"]
    text: str

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text is required")
        return value


class SendMediaEvent(_Addressed):
    type: Literal["sendMedia"]
    text: str = ""
    mediaUrl: str
    mediaType: MediaKind

    @field_validator("mediaUrl")
    @classmethod
    def _url_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("mediaUrl is required")
        return value


InboundEvent = Annotated[
    Union[GetRoomsEvent, TypingEvent, SendMessageEvent, SendMediaEvent],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter = TypeAdapter(InboundEvent)


def parse_event(raw: Union[str, bytes]) -> InboundEvent:
    """Parse one inbound frame.

    Raises:
        MalformedEvent: On invalid JSON, a non-object payload, an unknown
            ``type`` or missing/invalid fields.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedEvent(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedEvent("event must be a JSON object")
    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as exc:
        raise MalformedEvent(
            f"invalid {data.get('type', '<untyped>')} event: {exc.error_count()} error(s)"
        ) from exc


# =============================================================================
# Outbound Events
# =============================================================================


class RoomSummary(BaseModel):
    """One entry of the room list."""
    roomId: str
    name: str
    lastMessage: str = ""
    unreadCount: int = 0


class RoomsOut(BaseModel):
    type: Literal["rooms"] = "rooms"
    rooms: List[RoomSummary]


class HistoryOut(BaseModel):
    type: Literal["history"] = "history"
    messages: List[Message]


class MessageOut(BaseModel):
    type: Literal["message"] = "message"
    message: Message


class TypingOut(BaseModel):
    type: Literal["typing"] = "typing"
    username: str


class ErrorOut(BaseModel):
    type: Literal["error"] = "error"
    error: str


OutboundEvent = Union[RoomsOut, HistoryOut, MessageOut, TypingOut, ErrorOut]


def to_payload(event: OutboundEvent) -> dict:
    """Serialise an outbound event to its JSON-ready dict."""
    return event.model_dump(mode="json", by_alias=True)
