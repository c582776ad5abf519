"""Hushroom client: joins rooms and hands back live chat sessions.

This module provides the `Hushroom` class a user interface talks to. It
validates input, registers the room with the relay, and builds a
ChatSession on a fresh transport for every join.

Usage:
    client = Hushroom()                                   # default relay / $HUSHROOM_URL
    client = Hushroom(HushroomOptions(url="https://chat.example.com"))

    session = await client.join("team-x", "hunter2", "alice")
    runner = asyncio.create_task(session.run())
    await session.send_message("hello")
"""

from __future__ import annotations

import logging
import secrets
from typing import Callable

from .options import HushroomOptions
from .registration import RoomRegistrar, validate_name
from .session import ChatSession, RoomCredential
from .transport import Transport, WebSocketTransport

logger = logging.getLogger(__name__)


def disambiguate_username(username: str) -> str:
    """Append a random six-digit discriminator, e.g. "alice#482913"."""
    return f"{username}#{100000 + secrets.randbelow(900000)}"


class Hushroom:
    """Entry point for joining encrypted rooms.

    Examples:
        # Default relay
        client = Hushroom()

        # Explicit relay
        client = Hushroom.remote("https://chat.example.com")

        # Custom transport (tests use InMemoryTransport / LoopbackRelay)
        client = Hushroom(transport_factory=relay.connect, registrar=fake_registrar)
    """

    def __init__(
        self,
        options: HushroomOptions | None = None,
        *,
        registrar: RoomRegistrar | None = None,
        transport_factory: Callable[[], Transport] | None = None,
    ):
        """Initialize the client.

        Args:
            options: Relay location and timings. Defaults to HushroomOptions().
            registrar: Room registration client. Defaults to one for options.url.
            transport_factory: Builds a fresh transport per session.
                Defaults to a WebSocketTransport on options.ws_url.
        """
        self._options = options or HushroomOptions()
        self._registrar = registrar or RoomRegistrar(
            self._options.resolved_url,
            timeout=self._options.timeout,
        )
        self._transport_factory = transport_factory or self._websocket_transport
        logger.debug(f"Hushroom client options: {self._options.to_dict()}")

    @classmethod
    def remote(cls, url: str) -> "Hushroom":
        """Create a client for the relay at `url`."""
        return cls(HushroomOptions(url=url))

    @property
    def options(self) -> HushroomOptions:
        return self._options

    def _websocket_transport(self) -> Transport:
        return WebSocketTransport(self._options.ws_url, open_timeout=self._options.timeout)

    def new_session(self) -> ChatSession:
        """Build an unjoined session on a fresh transport."""
        return ChatSession(
            self._transport_factory(),
            typing_window=self._options.typing_window,
            local_typing_window=self._options.local_typing_window,
        )

    async def join(
        self,
        room: str,
        password: str,
        username: str,
        *,
        create: bool = True,
    ) -> ChatSession:
        """Join a room and return the connected session.

        Args:
            room: Room name (1-50 of letters, digits, '-', '_', '.')
            password: Room password
            username: Display name, same rules as the room name; a random
                "#NNNNNN" discriminator is appended
            create: Create the room if it does not exist. With False, a
                missing room raises RoomNotFoundError.

        Returns:
            A CONNECTED ChatSession. Start `session.run()` to receive frames.

        Raises:
            ValueError: Invalid room name, username or empty password
            CredentialError: The relay rejected the room or password
                (no transport is opened)
            DerivationError: The encryption key could not be initialized
            TransportError: The relay connection could not be opened
        """
        if not room or not username or not password:
            raise ValueError("Please fill in all fields.")
        if not validate_name(username) or not validate_name(room):
            raise ValueError(
                "Invalid username or room name. Use only letters, "
                "numbers, hyphens, underscores, and dots."
            )

        if create:
            created = await self._registrar.create_room(room, password)
            if created:
                logger.info(f"Created room {room}")
        else:
            await self._registrar.join_room(room, password)

        session = self.new_session()
        await session.join(
            RoomCredential(room_name=room, password=password),
            disambiguate_username(username),
        )
        return session
