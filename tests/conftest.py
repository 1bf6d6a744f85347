import asyncio
import json

import pytest
from fastapi.websockets import WebSocketState

from backend import RoomTable
from connections import ConnectionRegistry
from lifecycle import LifecycleManager
from relay import MessageRouter


class FakeWebSocket:
    """Records outbound frames; close() makes further sends fail like a dead socket."""

    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []

    async def send_text(self, data):
        if self.client_state != WebSocketState.CONNECTED:
            raise RuntimeError("Cannot call 'send' once a close message has been sent.")
        self.sent.append(json.loads(data))

    def close(self):
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED

    def types(self):
        return [m["type"] for m in self.sent]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def room_table():
    return RoomTable()


@pytest.fixture
def registry(room_table):
    return ConnectionRegistry(room_table)


@pytest.fixture
def router(room_table):
    return MessageRouter(room_table)


@pytest.fixture
def lifecycle(room_table, registry, router):
    return LifecycleManager(room_table, registry, router, default_room="default")


@pytest.fixture
def connect(lifecycle):
    """Open a fake client; returns (connection, websocket)."""
    def _connect():
        ws = FakeWebSocket()
        return lifecycle.connect(ws), ws
    return _connect


@pytest.fixture
def join(lifecycle, connect):
    """Open a fake client and send a join frame through the normal decode path."""
    async def _join(room, client_type):
        connection, ws = connect()
        frame = {"type": "join", "clientType": client_type}
        if room is not None:
            frame["room"] = room
        await lifecycle.handle_frame(connection, json.dumps(frame))
        await settle(lifecycle)
        return connection, ws
    return _join


async def send(lifecycle, connection, message):
    await lifecycle.handle_frame(connection, json.dumps(message))
    await settle(lifecycle)


async def settle(lifecycle):
    """Let every live connection's writer drain its outbox."""
    await lifecycle.registry.flush()


class StalledWebSocket(FakeWebSocket):
    """Open socket whose writes never complete, like a peer that stopped reading."""

    def __init__(self):
        super().__init__()
        self.pending = 0
        self._never = asyncio.Event()

    async def send_text(self, data):
        self.pending += 1
        await self._never.wait()
