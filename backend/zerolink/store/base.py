"""Abstract PersistenceStore interface.

The relay core only talks to durable storage through this interface so the
backing database stays swappable (DuckDB in this repo, tests use the same
implementation against ``:memory:``).
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .schemas import Conversation, Message, MessageQuery, UserRecord


class PersistenceStore(ABC):
    """Users, conversations and the message log.

    Implementations must be safe to call from the event loop and from
    FastAPI's thread-pool executor at the same time. Every method raises
    ``PersistenceFailure`` when the backing store errors.
    """

    # -- users --------------------------------------------------------------

    @abstractmethod
    def find_user(self, uid: str) -> Optional[UserRecord]:
        """Return the directory entry for *uid*, or None."""

    @abstractmethod
    def create_user(self, user: UserRecord) -> UserRecord:
        """Insert *user* unless *uid* already exists; return the stored entry."""

    @abstractmethod
    def list_users(self) -> List[UserRecord]:
        """Return every directory entry."""

    # -- conversations ------------------------------------------------------

    @abstractmethod
    def find_conversation(self, first: str, second: str) -> Optional[Conversation]:
        """Return the conversation for the unordered pair, or None."""

    @abstractmethod
    def create_conversation(self, first: str, second: str) -> Conversation:
        """Create the conversation for the unordered pair.

        Idempotent: concurrent or repeated calls leave exactly one row and
        all return it.
        """

    @abstractmethod
    def find_conversations_for(self, user_id: str) -> List[Conversation]:
        """Return every conversation that *user_id* participates in."""

    # -- messages -----------------------------------------------------------

    @abstractmethod
    def insert_message(self, message: Message) -> Message:
        """Append *message*, assigning its timestamp; return the stored copy."""

    @abstractmethod
    def find_messages(
        self,
        query: MessageQuery,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """Return messages matching *query* ordered by timestamp."""

    @abstractmethod
    def count_messages(self, query: MessageQuery) -> int:
        """Return the number of messages matching *query*."""

    @abstractmethod
    def mark_delivered(self, message_id: str) -> None:
        """Set the delivered flag on a stored message."""

    def close(self) -> None:
        """Release any held resources."""
