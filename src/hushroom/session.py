"""Encrypted chat session.

A ChatSession owns one transport and one room key for its whole lifetime:

    DISCONNECTED --join()--> JOINING --transport open--> CONNECTED
         |                      |                            |
         +----------------------+------ close / drop ------> CLOSED

A closed session is never reused; build a new ChatSession to reconnect.

Usage:
    session = ChatSession(WebSocketTransport("ws://localhost:8080/ws"))
    await session.join(RoomCredential("team-x", "hunter2"), "alice#123456")
    runner = asyncio.create_task(session.run())

    await session.send_message("hello")
    event = await session.events.get()
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from . import crypto
from .events import Connected, MessageReceived, SessionClosed, SessionEvent, TypingIndicator
from .protocol import (
    Envelope,
    JoinEnvelope,
    MessageEnvelope,
    ProtocolError,
    TypingEnvelope,
    decode_envelope,
    encode_envelope,
)
from .transport import Transport, TransportError
from .typing_indicator import LOCAL_TYPING_WINDOW, REMOTE_TYPING_WINDOW, TypingIndicatorDebouncer

logger = logging.getLogger(__name__)

DECRYPT_PLACEHOLDER = "Unable to decrypt message"


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    JOINING = "joining"
    CONNECTED = "connected"
    CLOSED = "closed"


class SessionStateError(RuntimeError):
    """Raised when an operation is not valid in the session's current state."""

    pass


@dataclass(frozen=True)
class RoomCredential:
    """Room name and password, held only while joining."""

    room_name: str
    password: str

    def __repr__(self) -> str:
        return f"RoomCredential(room_name={self.room_name!r}, password=<redacted>)"


async def _run_sync(fn: Callable[..., Any], *args: Any) -> Any:
    """Run a synchronous function off the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args))


class ChatSession:
    """One client's lifecycle in one room.

    Incoming frames enter through run() (or on_envelope() directly in
    tests); everything the UI needs to show is pushed onto `events`.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        typing_window: float = REMOTE_TYPING_WINDOW,
        local_typing_window: float = LOCAL_TYPING_WINDOW,
    ) -> None:
        self._transport = transport
        self._state = SessionState.DISCONNECTED
        self._key: crypto.SessionKey | None = None
        self._username: str | None = None
        self._room: str | None = None
        self.events: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self.typing = TypingIndicatorDebouncer(
            self.send_typing,
            self._on_typing_indicator,
            window=typing_window,
            local_window=local_typing_window,
        )

    # --- Properties ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def username(self) -> str | None:
        return self._username

    @property
    def room(self) -> str | None:
        return self._room

    # --- Lifecycle ---

    async def join(self, credential: RoomCredential, username: str) -> None:
        """Derive the room key, open the transport and announce ourselves.

        Args:
            credential: Room name and password
            username: Display name, already disambiguated

        Raises:
            SessionStateError: If the session is not DISCONNECTED
            DerivationError: If the key cannot be initialized (state unchanged)
            TransportError: If the transport cannot be opened (session CLOSED)
        """
        if self._state is not SessionState.DISCONNECTED:
            raise SessionStateError(f"Cannot join from state {self._state.value}")

        key = await _run_sync(crypto.derive_room_key, credential.room_name, credential.password)

        self._key = key
        self._username = username
        self._room = credential.room_name
        self._state = SessionState.JOINING
        logger.debug(f"Joining room {self._room} as {username}")

        try:
            await self._transport.open()
        except TransportError as e:
            await self._shutdown(str(e))
            raise

        self._state = SessionState.CONNECTED
        await self._send(JoinEnvelope(username=username, room=credential.room_name))
        logger.info(f"Joined room {self._room} as {username}")
        self._emit(Connected(room=credential.room_name, username=username))

    async def run(self) -> None:
        """Dispatch incoming frames until the transport closes.

        Frames are handled one at a time in receipt order. Whatever ends the
        stream, the session finishes CLOSED.
        """
        if self._state is SessionState.DISCONNECTED:
            raise SessionStateError("Session has not joined a room")

        reason = "Connection closed"
        try:
            async for frame in self._transport.frames():
                await self.on_envelope(frame)
        except TransportError as e:
            logger.warning(f"Transport error in room {self._room}: {e}")
            reason = str(e)
        finally:
            await self._shutdown(reason)

    async def close(self, reason: str = "Session closed") -> None:
        """End the session. Idempotent."""
        await self._shutdown(reason)

    # --- Incoming ---

    async def on_envelope(self, raw: str | bytes | dict) -> None:
        """Handle one incoming frame.

        Decode and decrypt failures affect only this frame: undecodable
        frames are dropped, undecryptable messages become a placeholder.
        """
        if self._state is SessionState.CLOSED:
            return

        try:
            envelope = decode_envelope(raw)
        except ProtocolError as e:
            logger.warning(f"Dropping malformed frame: {e}")
            return

        if envelope is None:
            logger.debug("Ignoring frame with unknown type")
            return

        await self._dispatch(envelope)

    async def _dispatch(self, envelope: Envelope) -> None:
        if isinstance(envelope, TypingEnvelope):
            if envelope.username != self._username:
                self.typing.remote_typing(envelope.username)
        elif isinstance(envelope, MessageEnvelope):
            await self._receive_message(envelope)
        elif isinstance(envelope, JoinEnvelope):
            logger.debug(f"Ignoring join frame for {envelope.username}")

    async def _receive_message(self, envelope: MessageEnvelope) -> None:
        key = self._key
        if key is None:
            return

        result: crypto.DecryptResult = await _run_sync(
            crypto.decrypt_message, key, envelope.ciphertext
        )

        # Closed while decrypting: drop the result
        if self._state is SessionState.CLOSED:
            return

        text = result.plaintext
        if text is None:
            logger.warning(f"Could not decrypt message from {envelope.username}: {result.error}")

        self._emit(
            MessageReceived(
                username=envelope.username,
                text=DECRYPT_PLACEHOLDER if text is None else text,
                is_own=envelope.username == self._username,
                decrypted=text is not None,
            )
        )

    # --- Outgoing ---

    async def send_message(self, plaintext: str) -> None:
        """Encrypt and send a chat message. Empty text is ignored."""
        if not plaintext:
            return
        key, username, room = self._require_connected()

        ciphertext = await _run_sync(crypto.encrypt_message, key, plaintext)
        await self._send(MessageEnvelope(username=username, room=room, ciphertext=ciphertext))

    async def send_typing(self) -> None:
        """Send one typing notification."""
        _, username, room = self._require_connected()
        await self._send(TypingEnvelope(username=username, room=room))

    async def local_input_changed(self) -> None:
        """The local user edited their input."""
        await self.typing.notify_local_typing()

    # --- Internals ---

    def _require_connected(self) -> tuple[crypto.SessionKey, str, str]:
        """Return the key, username and room of a connected session."""
        key, username, room = self._key, self._username, self._room
        if self._state is not SessionState.CONNECTED or key is None:
            raise SessionStateError(f"Session is {self._state.value}, not connected")
        if username is None or room is None:
            raise SessionStateError("Session has no username or room")
        return key, username, room

    async def _send(self, envelope: Envelope) -> None:
        try:
            await self._transport.send(encode_envelope(envelope))
        except TransportError as e:
            await self._shutdown(str(e))
            raise

    def _emit(self, event: SessionEvent) -> None:
        self.events.put_nowait(event)

    def _on_typing_indicator(self, username: str | None) -> None:
        if self._state is SessionState.CLOSED:
            return
        self._emit(TypingIndicator(username=username))

    async def _shutdown(self, reason: str) -> None:
        if self._state is SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED
        self._key = None
        self.typing.cancel()
        try:
            await self._transport.close()
        except TransportError:
            logger.debug("Error closing transport", exc_info=True)
        logger.info(f"Session in room {self._room} closed: {reason}")
        self._emit(SessionClosed(reason=reason))
