"""Pytest fixtures and in-process fakes for testing with hushroom.

Usage in conftest.py:
    pytest_plugins = ["hushroom.testing"]

Or import specific helpers:
    from hushroom.testing import LoopbackRelay, make_mock_registrar

Available fixtures:
    - loopback_relay: In-process relay connecting InMemoryTransports
    - registrar: RoomRegistrar backed by an in-memory room table
    - hushroom_client: Hushroom client wired to both of the above
    - room_key: Key for room "team-x" with password "hunter2"
"""

from __future__ import annotations

import json
from typing import Generator

import httpx
import pytest

from .auth import hash_password, verify_password
from .client import Hushroom
from .crypto import SessionKey, derive_room_key
from .options import HushroomOptions
from .registration import RoomRegistrar
from .transport import InMemoryTransport

TEST_RELAY_URL = "http://relay.test"


class LoopbackRelay:
    """Routes frames between InMemoryTransports the way the relay does.

    A `join` frame puts the sending transport in a room; `typing` and
    `message` frames are delivered to every transport in that room, the
    sender included.

    Example:
        relay = LoopbackRelay()
        alice = ChatSession(relay.connect())
        bob = ChatSession(relay.connect())
    """

    def __init__(self) -> None:
        self.transports: list[InMemoryTransport] = []
        self._rooms: dict[int, str] = {}

    def connect(self) -> InMemoryTransport:
        """Create a transport attached to this relay."""
        transport = InMemoryTransport(on_send=self._route)
        self.transports.append(transport)
        return transport

    def room_of(self, transport: InMemoryTransport) -> str | None:
        return self._rooms.get(id(transport))

    def _route(self, sender: InMemoryTransport, frame: str) -> None:
        data = json.loads(frame)
        kind = data.get("type")

        if kind == "join":
            self._rooms[id(sender)] = data["room"]
            return

        room = self._rooms.get(id(sender))
        if room is None or kind not in ("typing", "message"):
            return

        for transport in self.transports:
            if not transport.closed and self._rooms.get(id(transport)) == room:
                transport.feed(frame)


def make_mock_registrar(rooms: dict[str, str] | None = None) -> RoomRegistrar:
    """RoomRegistrar whose HTTP calls hit an in-memory room table.

    Args:
        rooms: Map of room name -> password hash, shared with the caller so
            tests can inspect or pre-populate it.
    """
    table = rooms if rooms is not None else {}

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        name, password = body["name"], body["password"]
        stored = table.get(name)

        if request.url.path == "/create-room":
            if stored is None:
                table[name] = hash_password(password)
                return httpx.Response(201, json={"name": name, "created": True})
        elif request.url.path == "/join-room":
            if stored is None:
                return httpx.Response(404, json={"detail": "Room not found"})
        else:
            return httpx.Response(404, json={"detail": "Not Found"})

        if not verify_password(password, stored):
            return httpx.Response(401, json={"detail": "Invalid password"})
        return httpx.Response(200, json={"name": name})

    return RoomRegistrar(TEST_RELAY_URL, transport=httpx.MockTransport(handler))


@pytest.fixture
def loopback_relay() -> LoopbackRelay:
    """Fresh in-process relay."""
    return LoopbackRelay()


@pytest.fixture
def registrar() -> RoomRegistrar:
    """Registrar backed by an empty in-memory room table."""
    return make_mock_registrar()


@pytest.fixture
def hushroom_client(
    loopback_relay: LoopbackRelay,
    registrar: RoomRegistrar,
) -> Generator[Hushroom, None, None]:
    """Hushroom client using the loopback relay and mock registrar.

    Example:
        async def test_chat(hushroom_client):
            alice = await hushroom_client.join("team-x", "hunter2", "alice")
            bob = await hushroom_client.join("team-x", "hunter2", "bob")
    """
    yield Hushroom(
        HushroomOptions(url=TEST_RELAY_URL),
        registrar=registrar,
        transport_factory=loopback_relay.connect,
    )


@pytest.fixture
def room_key() -> SessionKey:
    """Key for room "team-x" with password "hunter2"."""
    return derive_room_key("team-x", "hunter2")
