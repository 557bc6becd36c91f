"""DuckDB-backed persistence store.

Database Schema:
    users table:
        - uid: Verified identity (primary key)
        - email, display_name
        - created_at: Epoch seconds
    conversations table:
        - participant_a, participant_b: Normalised pair (primary key)
        - created_at: Epoch seconds
    messages table:
        - id: UUID string (primary key)
        - seq: Insertion sequence, breaks timestamp ties
        - sender, recipient: Identities ("global" for the shared room)
        - text, media_url, media_type
        - timestamp: Epoch seconds, strictly increasing per store
        - delivered: Fanned out to a counterpart

Thread Safety:
    The DuckDB connection is NOT thread-safe. Every statement runs under an
    RLock so the event loop and FastAPI's thread pool can share one store.
    Conversation creation relies on the primary key plus ON CONFLICT DO
    NOTHING, so racing first-contact messages still leave a single row.

Usage:
    store = DuckDBStore(db_path=":memory:")
    stored = store.insert_message(Message(username="alice", text="hi"))
    thread = store.find_messages(MessageQuery(thread=("alice", "bob")))
"""
import logging
import math
import threading
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

import duckdb

from zerolink.errors import PersistenceFailure

from .base import PersistenceStore
from .schemas import (
    Conversation,
    MediaKind,
    Message,
    MessageQuery,
    UserRecord,
    normalise_pair,
)

logger = logging.getLogger(__name__)

_MESSAGE_COLUMNS = (
    "id, sender, recipient, text, media_url, media_type, timestamp, delivered"
)


class DuckDBStore(PersistenceStore):
    """PersistenceStore over a single DuckDB connection.

    Args:
        db_path: Path to the DuckDB file, or ``":memory:"``.
    """

    def __init__(self, db_path: str = "zerolink.duckdb") -> None:
        self._db_path = db_path
        self._lock = threading.RLock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._last_ts = 0.0
        self._initialize_db()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get the DuckDB connection, creating if needed."""
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    @contextmanager
    def _guard(self, operation: str) -> Iterator[duckdb.DuckDBPyConnection]:
        """Serialise access and translate DuckDB errors to PersistenceFailure."""
        with self._lock:
            try:
                yield self._get_connection()
            except duckdb.Error as exc:
                logger.error(f"[Store] {operation} failed: {exc}")
                raise PersistenceFailure(f"{operation} failed: {exc}") from exc

    def _initialize_db(self) -> None:
        """Create tables and sequences if they don't exist (idempotent)."""
        with self._guard("initialize") as conn:
            conn.execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    uid VARCHAR PRIMARY KEY,
                    email VARCHAR NOT NULL,
                    display_name VARCHAR NOT NULL,
                    created_at DOUBLE NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    participant_a VARCHAR NOT NULL,
                    participant_b VARCHAR NOT NULL,
                    created_at DOUBLE NOT NULL,
                    PRIMARY KEY (participant_a, participant_b)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id VARCHAR PRIMARY KEY,
                    seq BIGINT DEFAULT nextval('messages_seq'),
                    sender VARCHAR NOT NULL,
                    recipient VARCHAR NOT NULL,
                    text VARCHAR NOT NULL,
                    media_url VARCHAR,
                    media_type VARCHAR,
                    timestamp DOUBLE NOT NULL,
                    delivered BOOLEAN NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_recipient ON messages(recipient)"
            )
            row = conn.execute("SELECT max(timestamp) FROM messages").fetchone()
            self._last_ts = row[0] if row and row[0] is not None else 0.0

    # =========================================================================
    # Users
    # =========================================================================

    def find_user(self, uid: str) -> Optional[UserRecord]:
        with self._guard("find_user") as conn:
            row = conn.execute(
                "SELECT uid, email, display_name FROM users WHERE uid = ?",
                [uid],
            ).fetchone()
        if not row:
            return None
        return UserRecord(uid=row[0], email=row[1], display_name=row[2])

    def create_user(self, user: UserRecord) -> UserRecord:
        with self._guard("create_user") as conn:
            conn.execute(
                """
                INSERT INTO users (uid, email, display_name, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT DO NOTHING
                """,
                [user.uid, user.email, user.display_name or user.email, time.time()],
            )
            stored = self.find_user(user.uid)
        return stored or user

    def list_users(self) -> List[UserRecord]:
        with self._guard("list_users") as conn:
            rows = conn.execute(
                "SELECT uid, email, display_name FROM users ORDER BY created_at ASC"
            ).fetchall()
        return [UserRecord(uid=r[0], email=r[1], display_name=r[2]) for r in rows]

    # =========================================================================
    # Conversations
    # =========================================================================

    def find_conversation(self, first: str, second: str) -> Optional[Conversation]:
        a, b = normalise_pair(first, second)
        with self._guard("find_conversation") as conn:
            row = conn.execute(
                """
                SELECT participant_a, participant_b, created_at
                FROM conversations
                WHERE participant_a = ? AND participant_b = ?
                """,
                [a, b],
            ).fetchone()
        if not row:
            return None
        return Conversation(participant_a=row[0], participant_b=row[1], created_at=row[2])

    def create_conversation(self, first: str, second: str) -> Conversation:
        a, b = normalise_pair(first, second)
        with self._guard("create_conversation") as conn:
            conn.execute(
                """
                INSERT INTO conversations (participant_a, participant_b, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT DO NOTHING
                """,
                [a, b, time.time()],
            )
            conversation = self.find_conversation(a, b)
        if conversation is None:
            raise PersistenceFailure(f"conversation {a}/{b} missing after insert")
        return conversation

    def find_conversations_for(self, user_id: str) -> List[Conversation]:
        with self._guard("find_conversations_for") as conn:
            rows = conn.execute(
                """
                SELECT participant_a, participant_b, created_at
                FROM conversations
                WHERE participant_a = ? OR participant_b = ?
                ORDER BY created_at ASC
                """,
                [user_id, user_id],
            ).fetchall()
        return [
            Conversation(participant_a=r[0], participant_b=r[1], created_at=r[2])
            for r in rows
        ]

    # =========================================================================
    # Messages
    # =========================================================================

    def _next_timestamp(self) -> float:
        """Wall-clock seconds, bumped so every insert is strictly later."""
        ts = max(time.time(), math.nextafter(self._last_ts, math.inf))
        self._last_ts = ts
        return ts

    def insert_message(self, message: Message) -> Message:
        with self._guard("insert_message") as conn:
            stored = message.model_copy(update={"timestamp": self._next_timestamp()})
            conn.execute(
                f"""
                INSERT INTO messages ({_MESSAGE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    stored.id,
                    stored.username,
                    stored.receivername,
                    stored.text,
                    stored.mediaUrl,
                    stored.mediaType.value if stored.mediaType else None,
                    stored.timestamp,
                    stored.delivered,
                ],
            )
        return stored

    @staticmethod
    def _where(query: MessageQuery) -> Tuple[str, list]:
        clauses: List[str] = []
        params: list = []
        if query.thread is not None:
            first, second = query.thread
            clauses.append(
                "((sender = ? AND recipient = ?) OR (sender = ? AND recipient = ?))"
            )
            params.extend([first, second, second, first])
        if query.sender is not None:
            clauses.append("sender = ?")
            params.append(query.sender)
        if query.recipient is not None:
            clauses.append("recipient = ?")
            params.append(query.recipient)
        if query.delivered is not None:
            clauses.append("delivered = ?")
            params.append(query.delivered)
        if not clauses:
            return "", params
        return "WHERE " + " AND ".join(clauses), params

    @staticmethod
    def _row_to_message(row: tuple) -> Message:
        return Message(
            id=row[0],
            username=row[1],
            receivername=row[2],
            text=row[3],
            mediaUrl=row[4],
            mediaType=MediaKind(row[5]) if row[5] else None,
            timestamp=row[6],
            delivered=row[7],
        )

    def find_messages(
        self,
        query: MessageQuery,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Message]:
        where, params = self._where(query)
        direction = "DESC" if descending else "ASC"
        sql = (
            f"SELECT {_MESSAGE_COLUMNS} FROM messages {where} "
            f"ORDER BY timestamp {direction}, seq {direction}"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._guard("find_messages") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_message(r) for r in rows]

    def count_messages(self, query: MessageQuery) -> int:
        where, params = self._where(query)
        with self._guard("count_messages") as conn:
            row = conn.execute(f"SELECT count(*) FROM messages {where}", params).fetchone()
        return int(row[0]) if row else 0

    def mark_delivered(self, message_id: str) -> None:
        with self._guard("mark_delivered") as conn:
            conn.execute(
                "UPDATE messages SET delivered = true WHERE id = ?",
                [message_id],
            )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
