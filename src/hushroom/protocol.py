"""Wire protocol for hushroom.

Every frame on the transport is a JSON object with a `type` discriminant:

    {"type": "join", "username": "alice#123456", "room": "team-x"}
    {"type": "typing", "username": "alice#123456", "room": "team-x"}
    {"type": "message", "username": "alice#123456",
     "content": {"encrypted": [...], "iv": [...]}, "room": "team-x"}

Octet sequences (ciphertext and nonce) travel as arrays of integers. The
username is carried in clear next to the encrypted body, so authorship is
only as trustworthy as the relay.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, ClassVar, Union

from .crypto import Ciphertext

JOIN = "join"
TYPING = "typing"
MESSAGE = "message"


class ProtocolError(ValueError):
    """Raised when a frame cannot be decoded into an envelope."""

    pass


def _require_str(data: dict, field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str):
        raise ProtocolError(f"Field '{field}' must be a string")
    return value


def octets_to_list(data: bytes) -> list[int]:
    """Encode bytes as a JSON-friendly list of integers."""
    return list(data)


def list_to_octets(values: Any, field: str) -> bytes:
    """Decode a list of integers (0-255) back to bytes."""
    if not isinstance(values, list):
        raise ProtocolError(f"Field '{field}' must be an array of octets")
    # bool is an int subclass; reject it explicitly
    if any(not isinstance(v, int) or isinstance(v, bool) for v in values):
        raise ProtocolError(f"Field '{field}' must contain only integers")
    try:
        return bytes(values)
    except ValueError as e:
        raise ProtocolError(f"Field '{field}' has an octet outside 0-255") from e


@dataclass(frozen=True)
class JoinEnvelope:
    """First frame of every connection: announces the user and room."""

    type: ClassVar[str] = JOIN

    username: str
    room: str

    def to_dict(self) -> dict:
        return {"type": self.type, "username": self.username, "room": self.room}

    @classmethod
    def from_dict(cls, data: dict) -> "JoinEnvelope":
        return cls(username=_require_str(data, "username"), room=_require_str(data, "room"))


@dataclass(frozen=True)
class TypingEnvelope:
    """Transient "user is typing" notification."""

    type: ClassVar[str] = TYPING

    username: str
    room: str

    def to_dict(self) -> dict:
        return {"type": self.type, "username": self.username, "room": self.room}

    @classmethod
    def from_dict(cls, data: dict) -> "TypingEnvelope":
        return cls(username=_require_str(data, "username"), room=_require_str(data, "room"))


@dataclass(frozen=True)
class MessageEnvelope:
    """An encrypted chat message."""

    type: ClassVar[str] = MESSAGE

    username: str
    room: str
    ciphertext: Ciphertext

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "username": self.username,
            "content": {
                "encrypted": octets_to_list(self.ciphertext.data),
                "iv": octets_to_list(self.ciphertext.nonce),
            },
            "room": self.room,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MessageEnvelope":
        content = data.get("content")
        if not isinstance(content, dict):
            raise ProtocolError("Field 'content' must be an object")
        return cls(
            username=_require_str(data, "username"),
            room=_require_str(data, "room"),
            ciphertext=Ciphertext(
                data=list_to_octets(content.get("encrypted"), "encrypted"),
                nonce=list_to_octets(content.get("iv"), "iv"),
            ),
        )


Envelope = Union[JoinEnvelope, TypingEnvelope, MessageEnvelope]

ENVELOPE_TYPES: dict[str, type[JoinEnvelope] | type[TypingEnvelope] | type[MessageEnvelope]] = {
    JOIN: JoinEnvelope,
    TYPING: TypingEnvelope,
    MESSAGE: MessageEnvelope,
}


def encode_envelope(envelope: Envelope) -> str:
    """Serialize an envelope to a JSON text frame."""
    return json.dumps(envelope.to_dict())


def decode_envelope(raw: str | bytes | dict) -> Envelope | None:
    """
    Parse a frame into an envelope.

    Args:
        raw: JSON text/bytes from the transport, or an already-parsed dict

    Returns:
        The decoded envelope, or None if the frame carries a `type` this
        client does not know (ignored for forward compatibility)

    Raises:
        ProtocolError: If the frame is not a JSON object or a known
            envelope is missing fields
    """
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ProtocolError(f"Frame is not valid JSON: {e}") from e
        except RecursionError as e:
            raise ProtocolError("Frame is nested too deeply") from e

    if not isinstance(data, dict):
        raise ProtocolError("Frame must be a JSON object")

    kind = data.get("type")
    envelope_cls = ENVELOPE_TYPES.get(kind) if isinstance(kind, str) else None
    if envelope_cls is None:
        return None
    return envelope_cls.from_dict(data)
