"""Tests for room registration against the relay's HTTP endpoints."""

import json

import httpx
import pytest

from hushroom.registration import (
    CredentialError,
    InvalidPasswordError,
    RoomJoinError,
    RoomNotFoundError,
    RoomRegistrar,
    validate_name,
)
from hushroom.testing import TEST_RELAY_URL, make_mock_registrar


def registrar_returning(status, body=None, requests=None):
    def handler(request):
        if requests is not None:
            requests.append(request)
        return httpx.Response(status, json=body or {})

    return RoomRegistrar(TEST_RELAY_URL + "/", transport=httpx.MockTransport(handler))


class TestValidateName:
    """Tests for validate_name."""

    @pytest.mark.parametrize("name", ["alice", "team-x", "a.b_c-1", "A" * 50])
    def test_valid(self, name):
        assert validate_name(name)

    @pytest.mark.parametrize("name", ["", "has space", "bob#123", "<script>", "A" * 51, "ü"])
    def test_invalid(self, name):
        assert not validate_name(name)


class TestRequests:
    """What goes over the wire."""

    @pytest.mark.asyncio
    async def test_create_posts_name_and_password(self):
        requests = []
        registrar = registrar_returning(201, requests=requests)

        assert await registrar.create_room("team-x", "hunter2") is True

        [request] = requests
        assert request.method == "POST"
        assert str(request.url) == "http://relay.test/create-room"
        assert json.loads(request.content) == {"name": "team-x", "password": "hunter2"}

    @pytest.mark.asyncio
    async def test_join_posts_to_join_room(self):
        requests = []
        registrar = registrar_returning(200, requests=requests)

        await registrar.join_room("team-x", "hunter2")

        assert requests[0].url.path == "/join-room"

    @pytest.mark.asyncio
    async def test_existing_room_is_not_created(self):
        assert await registrar_returning(200).create_room("team-x", "hunter2") is False


class TestErrors:
    """Status codes map to credential errors."""

    @pytest.mark.asyncio
    async def test_401_is_invalid_password(self):
        with pytest.raises(InvalidPasswordError, match="Invalid password") as exc_info:
            await registrar_returning(401).create_room("team-x", "wrong")
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_404_is_room_not_found(self):
        with pytest.raises(RoomNotFoundError, match="Room not found"):
            await registrar_returning(404).join_room("nowhere", "hunter2")

    @pytest.mark.asyncio
    async def test_other_status_is_join_error(self):
        with pytest.raises(RoomJoinError, match="500") as exc_info:
            await registrar_returning(500).join_room("team-x", "hunter2")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_network_failure_is_join_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        registrar = RoomRegistrar(TEST_RELAY_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(RoomJoinError, match="Error joining room"):
            await registrar.create_room("team-x", "hunter2")

    def test_all_are_credential_errors(self):
        for cls in (InvalidPasswordError, RoomNotFoundError, RoomJoinError):
            assert issubclass(cls, CredentialError)


class TestMockRegistrar:
    """The in-memory registrar used by the test fixtures."""

    @pytest.mark.asyncio
    async def test_create_then_join(self):
        rooms = {}
        registrar = make_mock_registrar(rooms)

        assert await registrar.create_room("team-x", "hunter2") is True
        assert await registrar.create_room("team-x", "hunter2") is False
        await registrar.join_room("team-x", "hunter2")

        assert "hunter2" not in rooms["team-x"]

    @pytest.mark.asyncio
    async def test_wrong_password(self):
        registrar = make_mock_registrar()
        await registrar.create_room("team-x", "hunter2")

        with pytest.raises(InvalidPasswordError):
            await registrar.join_room("team-x", "wrong")
        with pytest.raises(InvalidPasswordError):
            await registrar.create_room("team-x", "wrong")
