"""Live WebSocket connections and their room/role identity."""
import asyncio
import json
import uuid
from enum import Enum
from typing import Dict, NamedTuple, Optional

from fastapi.websockets import WebSocketState

from constants import OUTBOX_MAX_FRAMES, RECEIVER_CLIENT_TYPE, SENDER_CLIENT_TYPE
from logging_config import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    PUBLISHER = "publisher"
    SUBSCRIBER = "subscriber"

    @classmethod
    def from_client_type(cls, client_type: str) -> "Role":
        if client_type == SENDER_CLIENT_TYPE:
            return cls.PUBLISHER
        if client_type == RECEIVER_CLIENT_TYPE:
            return cls.SUBSCRIBER
        raise ValueError(f"unknown clientType: {client_type!r}")


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    JOINED = "joined"
    GONE = "gone"


class Connection:
    """One WebSocket plus the room and role it joined with.

    `room_id` and `role` are assigned once by ConnectionRegistry.register and
    never change afterwards.
    """

    def __init__(self, websocket, connection_id: Optional[str] = None):
        self.websocket = websocket
        self.connection_id = connection_id or uuid.uuid4().hex
        self.room_id: Optional[str] = None
        self.role: Optional[Role] = None
        self.state = ConnectionState.CONNECTED
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=OUTBOX_MAX_FRAMES)
        self._writer: Optional[asyncio.Task] = None

    def __repr__(self):
        return f"Connection({self.connection_id[:8]}, room={self.room_id!r}, role={self.role}, state={self.state.value})"

    @property
    def is_joined(self) -> bool:
        return self.state == ConnectionState.JOINED

    @property
    def is_open(self) -> bool:
        if self.state == ConnectionState.GONE:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def start(self):
        """Start the task that drains the outbox onto the socket."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop(), name=f"writer-{self.connection_id[:8]}")

    def stop(self):
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()

    def send(self, message: dict) -> bool:
        """Queue one JSON frame. Never waits on the peer.

        Closed transports and full outboxes are skipped, never retried.
        """
        if not self.is_open:
            logger.debug(f"Skipping send of {message.get('type')} to closed connection {self.connection_id}")
            return False
        try:
            self._outbox.put_nowait(json.dumps(message))
        except asyncio.QueueFull:
            logger.warning(f"Outbox of connection {self.connection_id} is full, dropping {message.get('type')}")
            return False
        return True

    async def flush(self):
        """Wait until every queued frame has been written or dropped."""
        if self._writer is None or self._writer.done():
            return
        await self._outbox.join()

    async def _write_loop(self):
        while True:
            frame = await self._outbox.get()
            try:
                if self.is_open:
                    await self.websocket.send_text(frame)
            except Exception as e:
                # the peer can go away between the state check and the write
                logger.debug(f"Write to connection {self.connection_id} failed: {e}")
            finally:
                self._outbox.task_done()


class Departure(NamedTuple):
    room_id: str
    role: Role
    # False when a replaced publisher leaves and the slot already holds someone else
    vacated: bool


class ConnectionRegistry:
    """Tracks every open connection and keeps the room table in sync with joins and leaves.

    Callers must hold the room lock (RoomTable.lock) for the connection's room
    around register and unregister.
    """

    def __init__(self, room_table):
        self.room_table = room_table
        self._connections: Dict[str, Connection] = {}

    def __len__(self):
        return len(self._connections)

    def __contains__(self, connection: Connection):
        return self._connections.get(connection.connection_id) is connection

    def open(self, websocket) -> Connection:
        connection = Connection(websocket)
        connection.start()
        self._connections[connection.connection_id] = connection
        logger.debug(f"Opened connection {connection.connection_id} (live connections: {len(self._connections)})")
        return connection

    def register(self, connection: Connection, room_id: str, role: Role) -> bool:
        if connection.state != ConnectionState.CONNECTED:
            logger.warning(
                f"Ignoring join to room {room_id} as {role.value} from connection {connection.connection_id}: "
                f"already {connection.state.value} (room={connection.room_id}, role={connection.role})"
            )
            return False

        connection.room_id = room_id
        connection.role = role
        connection.state = ConnectionState.JOINED

        if role == Role.PUBLISHER:
            self.room_table.add_publisher(room_id, connection)
        else:
            self.room_table.add_subscriber(room_id, connection)
        logger.info(f"Connection {connection.connection_id} joined room {room_id} as {role.value}")
        return True

    def unregister(self, connection: Connection) -> Optional[Departure]:
        """Forget a connection. Safe to call repeatedly and for connections that never joined."""
        self._connections.pop(connection.connection_id, None)
        previous_state = connection.state
        connection.state = ConnectionState.GONE
        connection.stop()

        if previous_state != ConnectionState.JOINED:
            logger.debug(f"Unregistered connection {connection.connection_id} (was {previous_state.value})")
            return None

        if connection.role == Role.PUBLISHER:
            vacated = self.room_table.remove_publisher(connection.room_id, connection)
        else:
            vacated = self.room_table.remove_subscriber(connection.room_id, connection)
        logger.info(f"Connection {connection.connection_id} left room {connection.room_id} ({connection.role.value})")
        return Departure(connection.room_id, connection.role, vacated)

    async def flush(self):
        """Wait for every live connection's outbox to drain."""
        await asyncio.gather(*(c.flush() for c in list(self._connections.values())))
