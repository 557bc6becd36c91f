"""Durable storage for users, conversations and messages."""

from .base import PersistenceStore
from .duckdb_store import DuckDBStore
from .schemas import (
    GLOBAL_ROOM,
    Conversation,
    MediaKind,
    Message,
    MessageQuery,
    UserRecord,
    normalise_pair,
)

__all__ = [
    "GLOBAL_ROOM",
    "Conversation",
    "DuckDBStore",
    "MediaKind",
    "Message",
    "MessageQuery",
    "PersistenceStore",
    "UserRecord",
    "normalise_pair",
]
