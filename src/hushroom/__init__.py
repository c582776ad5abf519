"""hushroom - End-to-end encrypted chat rooms keyed by room name and password.

Usage:
    from hushroom import Hushroom

    client = Hushroom.remote("http://localhost:8080")
    session = await client.join("team-x", "hunter2", "alice")
    runner = asyncio.create_task(session.run())

    await session.send_message("hello")
    event = await session.events.get()
"""

from hushroom._version import __version__
from hushroom.client import Hushroom
from hushroom.crypto import DecryptError, DerivationError
from hushroom.options import HushroomConfigError, HushroomOptions
from hushroom.registration import (
    CredentialError,
    InvalidPasswordError,
    RoomJoinError,
    RoomNotFoundError,
)
from hushroom.session import ChatSession, RoomCredential, SessionState, SessionStateError
from hushroom.transport import TransportError

__all__ = [
    "__version__",
    "Hushroom",
    "HushroomOptions",
    "HushroomConfigError",
    "ChatSession",
    "RoomCredential",
    "SessionState",
    "SessionStateError",
    "CredentialError",
    "InvalidPasswordError",
    "RoomNotFoundError",
    "RoomJoinError",
    "DecryptError",
    "DerivationError",
    "TransportError",
]
