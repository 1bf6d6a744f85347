import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional

from logging_config import get_logger

logger = get_logger(__name__)


class Room:
    """At most one publisher and any number of subscribers sharing a room key."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        self.publisher = None
        self.subscribers = set()
        self.created_at = datetime.now().isoformat()

    def __repr__(self):
        return f"Room({self.room_id!r}, publisher={self.publisher!r}, subscribers={len(self.subscribers)})"

    @property
    def is_empty(self) -> bool:
        return self.publisher is None and not self.subscribers

    def subscriber_snapshot(self) -> list:
        return list(self.subscribers)


class RoomTable:
    """Process-wide map of room id -> Room, plus one asyncio.Lock per room.

    The mutating methods are synchronous and never yield to the event loop;
    callers wrap a join/leave/fan-out sequence in `async with table.lock(room_id)`
    so the sequence is atomic with respect to other tasks touching the same room.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        logger.info("Initialized in-memory room table")

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, room_id: str):
        return room_id in self._rooms

    def room_ids(self) -> List[str]:
        return sorted(self._rooms)

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def get_or_create(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id)
            self._rooms[room_id] = room
            logger.info(f"Created room {room_id}")
        return room

    def add_publisher(self, room_id: str, connection) -> list:
        """Put `connection` in the publisher slot, replacing whoever held it.

        Returns the subscribers present at that moment.
        """
        room = self.get_or_create(room_id)
        previous = room.publisher
        if previous is not None and previous is not connection:
            logger.warning(f"Publisher {previous.connection_id} in room {room_id} replaced by {connection.connection_id}")
        room.publisher = connection
        logger.debug(f"Room {room_id} publisher set to {connection.connection_id} ({len(room.subscribers)} subscribers)")
        return room.subscriber_snapshot()

    def add_subscriber(self, room_id: str, connection):
        room = self.get_or_create(room_id)
        if connection in room.subscribers:
            logger.debug(f"Connection {connection.connection_id} already subscribed to room {room_id}")
            return
        room.subscribers.add(connection)
        logger.debug(f"Room {room_id} subscriber added: {connection.connection_id} (total {len(room.subscribers)})")

    def remove_publisher(self, room_id: str, connection) -> bool:
        """Clear the publisher slot only if `connection` still holds it."""
        room = self._rooms.get(room_id)
        if room is None or room.publisher is not connection:
            logger.debug(f"Connection {connection.connection_id} is not the current publisher of room {room_id}")
            return False
        room.publisher = None
        logger.debug(f"Room {room_id} publisher cleared")
        return True

    def remove_subscriber(self, room_id: str, connection) -> bool:
        room = self._rooms.get(room_id)
        if room is None or connection not in room.subscribers:
            return False
        room.subscribers.discard(connection)
        logger.debug(f"Room {room_id} subscriber removed: {connection.connection_id} (total {len(room.subscribers)})")
        return True

    def prune_if_empty(self, room_id: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None or not room.is_empty:
            return False
        del self._rooms[room_id]
        logger.info(f"Room {room_id} is empty, deleted")
        return True

    @asynccontextmanager
    async def lock(self, room_id: str):
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        self._lock_users[room_id] = self._lock_users.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[room_id] -= 1
            if self._lock_users[room_id] == 0:
                del self._lock_users[room_id]
                if room_id not in self._rooms:
                    self._locks.pop(room_id, None)
