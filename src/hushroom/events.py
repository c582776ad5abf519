"""Events a ChatSession emits to its user interface.

A session pushes these onto its `events` queue; the UI is the only
consumer. Events are plain immutable values and carry no key material.

    Connected           room joined, show the chat surface
    TypingIndicator     someone else is typing (username) or stopped (None)
    MessageReceived     a message to display, decrypted or a placeholder
    SessionClosed       the session ended; build a new one to reconnect
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union


@dataclass(frozen=True)
class Connected:
    room: str
    username: str


@dataclass(frozen=True)
class TypingIndicator:
    username: str | None


@dataclass(frozen=True)
class MessageReceived:
    """A message ready for display.

    `text` holds the decrypted plaintext when `decrypted` is True, and an
    inert placeholder otherwise.
    """

    username: str
    text: str
    is_own: bool
    decrypted: bool = True
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class SessionClosed:
    reason: str


SessionEvent = Union[Connected, TypingIndicator, MessageReceived, SessionClosed]
