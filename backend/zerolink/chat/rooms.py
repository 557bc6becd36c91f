"""Room list and history replay, computed from the persistence store."""
import logging
from typing import List

from zerolink.store.base import PersistenceStore
from zerolink.store.schemas import GLOBAL_ROOM, Message, MessageQuery

from .schemas import GLOBAL_ROOM_NAME, RoomSummary

logger = logging.getLogger(__name__)


class RoomResolver:
    """Read-only views over the store for one user.

    Args:
        store: Persistence store to query.
    """

    def __init__(self, store: PersistenceStore) -> None:
        self._store = store

    def _last_text(self, query: MessageQuery) -> str:
        latest = self._store.find_messages(query, descending=True, limit=1)
        return latest[0].text if latest else ""

    def build_room_list(self, user_id: str) -> List[RoomSummary]:
        """Return the global room followed by one room per conversation.

        Direct rooms are keyed by the peer's identity. Their order is not
        significant.
        """
        rooms = [
            RoomSummary(
                roomId=GLOBAL_ROOM,
                name=GLOBAL_ROOM_NAME,
                lastMessage=self._last_text(MessageQuery(recipient=GLOBAL_ROOM)),
                unreadCount=self._store.count_messages(
                    MessageQuery(recipient=GLOBAL_ROOM, delivered=False)
                ),
            )
        ]

        for conversation in self._store.find_conversations_for(user_id):
            peer = conversation.other(user_id)
            if peer is None or peer == user_id:
                continue
            rooms.append(
                RoomSummary(
                    roomId=peer,
                    name=peer,
                    lastMessage=self._last_text(MessageQuery(thread=(user_id, peer))),
                    unreadCount=self._store.count_messages(
                        MessageQuery(sender=peer, recipient=user_id, delivered=False)
                    ),
                )
            )

        logger.debug(f"[Rooms] {user_id}: {len(rooms)} room(s)")
        return rooms

    def load_history(self, user_id: str, room_id: str) -> List[Message]:
        """Return every message *user_id* sees in *room_id*, oldest first."""
        return self._store.find_messages(MessageQuery.for_room(user_id, room_id))
