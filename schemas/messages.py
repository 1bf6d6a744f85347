"""Wire protocol for the signaling WebSocket.

Every frame is a JSON object with a mandatory ``type`` field. Inbound frames
are decoded once, here, into one of the models below; anything that does not
match a known variant raises ``MalformedMessage`` and is dropped by the caller.
Session descriptions and ICE candidates are opaque objects relayed untouched.
"""
import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

JOIN = "join"
OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"

CREATE_OFFER = "create-offer"
SENDER_READY = "sender-ready"
SENDER_LEFT = "sender-left"


class MalformedMessage(ValueError):
    """Frame is not valid JSON or does not match any known message shape."""


class UnknownMessageType(MalformedMessage):
    """Frame is well-formed JSON but its ``type`` is not part of the protocol."""

    def __init__(self, message_type: str):
        super().__init__(f"unknown message type: {message_type!r}")
        self.message_type = message_type


class JoinMessage(BaseModel):
    type: Literal["join"]
    room: Optional[str] = None
    clientType: Literal["sender", "receiver"]

    def room_id(self, default: str) -> str:
        return self.room or default


class OfferMessage(BaseModel):
    type: Literal["offer"]
    offer: Dict[str, Any]


class AnswerMessage(BaseModel):
    type: Literal["answer"]
    answer: Dict[str, Any]


class IceCandidateMessage(BaseModel):
    type: Literal["ice-candidate"]
    candidate: Dict[str, Any]


InboundMessage = Annotated[
    Union[JoinMessage, OfferMessage, AnswerMessage, IceCandidateMessage],
    Field(discriminator="type"),
]

RelayMessage = Union[OfferMessage, AnswerMessage, IceCandidateMessage]

INBOUND_TYPES = frozenset({JOIN, OFFER, ANSWER, ICE_CANDIDATE})

_inbound_adapter = TypeAdapter(InboundMessage)


def decode_message(raw: Union[str, bytes]) -> InboundMessage:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"frame is not valid UTF-8: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedMessage(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedMessage(f"expected a JSON object, got {type(data).__name__}")

    message_type = data.get("type")
    if not isinstance(message_type, str):
        raise MalformedMessage("missing 'type' field")
    if message_type not in INBOUND_TYPES:
        raise UnknownMessageType(message_type)

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessage(f"invalid {message_type!r} message: {e.error_count()} error(s)") from e


def relay_payload(message: RelayMessage) -> dict:
    """Outbound copy of an offer/answer/candidate, with only the protocol fields."""
    return message.model_dump()


def notice(message_type: str) -> dict:
    """Body-less server notice: create-offer, sender-ready or sender-left."""
    return {"type": message_type}
