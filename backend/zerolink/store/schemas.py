"""Pydantic models for durable relay records.

- Message: one chat message, direct or global
- UserRecord: directory entry for an authenticated identity
- Conversation: a 1:1 pairing, stored with its participants normalised
- MessageQuery: filter accepted by find_messages / count_messages
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer

# Recipient sentinel for the shared room
GLOBAL_ROOM = "global"


class MediaKind(str, Enum):
    """Media attachment categories accepted in sendMedia."""
    IMAGE = "image"
    VIDEO = "video"


class Message(BaseModel):
    """Chat message as stored, replayed and broadcast.

    The id is serialised as ``_id`` on the wire. ``timestamp`` is assigned by
    the store at insert time as epoch seconds and goes out on the wire as an
    ISO 8601 UTC string. ``delivered`` is the only field that changes after
    the row is written.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        alias="_id",
        description="Unique message ID",
    )
    username: str = Field(..., description="Sender identity")
    receivername: str = Field(
        default=GLOBAL_ROOM,
        description="Recipient identity or the global sentinel",
    )
    text: str = Field(default="", description="Body text (may be empty for media)")
    mediaUrl: Optional[str] = Field(default=None, description="Attached media URL")
    mediaType: Optional[MediaKind] = Field(default=None, description="Attached media kind")
    timestamp: float = Field(default=0.0, description="Seconds since epoch, store-assigned")
    delivered: bool = Field(default=False, description="Fanned out to a counterpart")

    @field_serializer("timestamp", when_used="json")
    def _timestamp_iso(self, value: float) -> str:
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat(timespec="microseconds")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class UserRecord(BaseModel):
    """User directory entry keyed by verified identity."""
    uid: str
    email: str = ""
    display_name: str = ""

    @property
    def name(self) -> str:
        return self.display_name or self.email


def normalise_pair(first: str, second: str) -> Tuple[str, str]:
    """Order two identities so an unordered pair has a single key."""
    return (first, second) if first <= second else (second, first)


class Conversation(BaseModel):
    """Durable record that two identities have exchanged direct messages."""
    participant_a: str
    participant_b: str
    created_at: float = 0.0

    @property
    def participants(self) -> Tuple[str, str]:
        return (self.participant_a, self.participant_b)

    def other(self, user_id: str) -> Optional[str]:
        """Return the participant that is not *user_id*."""
        if user_id == self.participant_a:
            return self.participant_b
        if user_id == self.participant_b:
            return self.participant_a
        return None


@dataclass(frozen=True)
class MessageQuery:
    """Message filter.

    All set fields are ANDed. ``thread`` matches both directions between two
    identities and is mutually exclusive with ``sender``/``recipient``.
    """
    sender: Optional[str] = None
    recipient: Optional[str] = None
    thread: Optional[Tuple[str, str]] = None
    delivered: Optional[bool] = None

    @classmethod
    def for_room(cls, user_id: str, room_id: str) -> "MessageQuery":
        """Filter selecting everything *user_id* sees in *room_id*."""
        if room_id == GLOBAL_ROOM:
            return cls(recipient=GLOBAL_ROOM)
        return cls(thread=(user_id, room_id))
