"""Role-based fan-out of negotiation messages inside a room.

offer          publisher  -> every subscriber
answer         subscriber -> publisher
ice-candidate  publisher  -> every subscriber
ice-candidate  subscriber -> publisher
"""
from connections import Connection, Role
from logging_config import get_logger
from schemas.messages import ANSWER, ICE_CANDIDATE, OFFER, relay_payload

logger = get_logger(__name__)

# message type -> roles allowed to send it
ALLOWED_SENDERS = {
    OFFER: {Role.PUBLISHER},
    ANSWER: {Role.SUBSCRIBER},
    ICE_CANDIDATE: {Role.PUBLISHER, Role.SUBSCRIBER},
}


class MessageRouter:
    def __init__(self, room_table):
        self.room_table = room_table

    async def route(self, connection: Connection, message) -> int:
        """Relay `message` from `connection` and return how many peers it was queued for."""
        message_type = message.type
        if not connection.is_joined:
            logger.warning(f"Dropping {message_type} from connection {connection.connection_id}: not joined to a room")
            return 0

        allowed = ALLOWED_SENDERS.get(message_type)
        if allowed is None:
            logger.warning(f"Dropping {message_type} from connection {connection.connection_id}: not a relayable type")
            return 0
        if connection.role not in allowed:
            logger.warning(
                f"Dropping {message_type} from {connection.role.value} {connection.connection_id} "
                f"in room {connection.room_id}: not accepted from this role"
            )
            return 0

        payload = relay_payload(message)
        room_id = connection.room_id
        async with self.room_table.lock(room_id):
            room = self.room_table.get(room_id)
            if room is None:
                logger.debug(f"Dropping {message_type} for room {room_id}: room no longer exists")
                return 0

            if connection.role == Role.PUBLISHER:
                if room.publisher is not connection:
                    logger.warning(
                        f"Dropping {message_type} from replaced publisher {connection.connection_id} in room {room_id}"
                    )
                    return 0
                targets = room.subscriber_snapshot()
            else:
                if room.publisher is None:
                    logger.debug(f"No publisher in room {room_id}, {message_type} from {connection.connection_id} dropped")
                    return 0
                targets = [room.publisher]

            delivered = 0
            for target in targets:
                if target.send(payload):
                    delivered += 1

        logger.debug(f"Relayed {message_type} from {connection.connection_id} to {delivered}/{len(targets)} peers in room {room_id}")
        return delivered
