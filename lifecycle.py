"""Connect/join/leave handling for signaling connections.

A connection goes CONNECTED -> JOINED (first valid join) -> GONE (transport
closed). Joining kicks off negotiation when both sides are present; a
departing publisher tells its subscribers with sender-left. Empty rooms are
deleted as soon as the last member leaves.
"""
import asyncio
from typing import Union

from connections import Connection, ConnectionRegistry, Role
from logging_config import get_logger
from relay import MessageRouter
from schemas.messages import (
    CREATE_OFFER,
    SENDER_LEFT,
    SENDER_READY,
    JoinMessage,
    MalformedMessage,
    UnknownMessageType,
    decode_message,
    notice,
)

logger = get_logger(__name__)


class LifecycleManager:
    def __init__(self, room_table, registry: ConnectionRegistry, router: MessageRouter, default_room: str = "default"):
        self.room_table = room_table
        self.registry = registry
        self.router = router
        self.default_room = default_room

    def connect(self, websocket) -> Connection:
        return self.registry.open(websocket)

    async def handle_frame(self, connection: Connection, raw: Union[str, bytes]):
        """Decode and dispatch one inbound frame. Never raises."""
        try:
            message = decode_message(raw)
        except UnknownMessageType as e:
            logger.warning(f"Dropping frame from connection {connection.connection_id}: {e}")
            return
        except MalformedMessage as e:
            logger.warning(f"Dropping malformed frame from connection {connection.connection_id}: {e}")
            return

        logger.debug(f"[{connection.role.value if connection.role else 'unknown'}] {connection.connection_id} sent {message.type}")
        try:
            if isinstance(message, JoinMessage):
                await self.join(connection, message)
            else:
                await self.router.route(connection, message)
        except Exception as e:
            logger.error(f"Error handling {message.type} from connection {connection.connection_id}: {e}", exc_info=True)

    async def join(self, connection: Connection, message: JoinMessage) -> bool:
        room_id = message.room_id(self.default_room)
        role = Role.from_client_type(message.clientType)

        async with self.room_table.lock(room_id):
            if not self.registry.register(connection, room_id, role):
                return False
            room = self.room_table.get(room_id)

            # a publisher is asked for an offer even if every waiting subscriber has closed;
            # a subscriber only triggers one when the publisher is still open
            if role == Role.PUBLISHER:
                subscribers = room.subscriber_snapshot()
                if subscribers:
                    logger.info(f"Publisher joined room {room_id} with {len(subscribers)} waiting subscribers, requesting offer")
                    for subscriber in subscribers:
                        subscriber.send(notice(SENDER_READY))
                    connection.send(notice(CREATE_OFFER))
            else:
                publisher = room.publisher
                if publisher is not None and publisher.is_open:
                    logger.info(f"Subscriber joined room {room_id} with an active publisher, requesting offer")
                    connection.send(notice(SENDER_READY))
                    publisher.send(notice(CREATE_OFFER))
        return True

    async def disconnect(self, connection: Connection):
        """Run the GONE transition. Idempotent.

        Shielded: once started it completes even if the calling task is cancelled,
        so a departing publisher's subscribers always get sender-left.
        """
        await asyncio.shield(self._disconnect(connection))

    async def _disconnect(self, connection: Connection):
        room_id = connection.room_id
        if room_id is None:
            self.registry.unregister(connection)
            return

        async with self.room_table.lock(room_id):
            departure = self.registry.unregister(connection)
            if departure is None:
                return

            if departure.role == Role.PUBLISHER and departure.vacated:
                room = self.room_table.get(room_id)
                subscribers = room.subscriber_snapshot() if room else []
                if subscribers:
                    logger.info(f"Publisher left room {room_id}, notifying {len(subscribers)} subscribers")
                for subscriber in subscribers:
                    subscriber.send(notice(SENDER_LEFT))

            self.room_table.prune_if_empty(room_id)
