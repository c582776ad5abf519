"""Out-of-band room registration.

Before a session opens its transport, the client asks the relay to create
or validate the room with a plain HTTP call carrying the room name and
password. This is the only time the password leaves the client; the relay
never sees the derived key.
"""

from __future__ import annotations

import logging
import re

import httpx

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 50
NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\-_.]+$")


class CredentialError(Exception):
    """The relay rejected the room credentials."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidPasswordError(CredentialError):
    """Wrong password for an existing room (HTTP 401)."""

    pass


class RoomNotFoundError(CredentialError):
    """The room does not exist (HTTP 404)."""

    pass


class RoomJoinError(CredentialError):
    """Any other registration failure, including network errors."""

    pass


def validate_name(value: str, max_length: int = MAX_NAME_LENGTH) -> bool:
    """Check a room name or username: 1..max_length of letters, digits, '-', '_', '.'."""
    return 0 < len(value) <= max_length and NAME_PATTERN.match(value) is not None


class RoomRegistrar:
    """HTTP client for the relay's room endpoints.

    Args:
        base_url: Relay base URL, e.g. "http://localhost:8080"
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def create_room(self, room: str, password: str) -> bool:
        """Create the room, or validate the password if it already exists.

        Returns:
            True if the room was created, False if it already existed.

        Raises:
            InvalidPasswordError: Room exists with a different password
            RoomJoinError: Any other failure
        """
        response = await self._post("/create-room", room, password)
        return response.status_code == 201

    async def join_room(self, room: str, password: str) -> None:
        """Validate the password of an existing room.

        Raises:
            InvalidPasswordError: Wrong password
            RoomNotFoundError: No such room
            RoomJoinError: Any other failure
        """
        await self._post("/join-room", room, password)

    async def _post(self, path: str, room: str, password: str) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json={"name": room, "password": password})
        except httpx.HTTPError as e:
            logger.warning(f"Room registration request to {url} failed: {e}")
            raise RoomJoinError(f"Error joining room: {e}") from e

        if response.is_success:
            logger.debug(f"Room {room} accepted by relay ({response.status_code})")
            return response

        status = response.status_code
        if status == 401:
            raise InvalidPasswordError("Invalid password", status)
        if status == 404:
            raise RoomNotFoundError("Room not found", status)
        raise RoomJoinError(f"Error joining room ({status}: {response.text.strip()})", status)
