"""Tests for the hushroom relay."""

import json

import pytest
from fastapi.testclient import TestClient

from hushroom import db
from hushroom.relay import RoomHub, _delete_empty_room, app, sanitize_input


@pytest.fixture
def client():
    """Create test client."""
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


HUGE_INTEGER_FRAME = '{"type": "join", "room": "x", "n": ' + "1" * 5000 + "}"
DEEPLY_NESTED_FRAME = "[" * 100_000 + "]" * 100_000


def frame(kind, username, room):
    return json.dumps({"type": kind, "username": username, "room": room})


def join_and_sync(ws, username, room="team-x"):
    """Join `room`, then wait for our own typing echo so the join is known to be processed."""
    ws.send_text(frame("join", username, room))
    ws.send_text(frame("typing", username, room))
    echo = ws.receive_json()
    assert echo["type"] == "typing"
    return echo


class FakeSocket:
    """Records frames a RoomHub sends to one member."""

    def __init__(self, fail=False):
        self.sent = []
        self.closed = False
        self.fail = fail

    async def send_text(self, frame):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(json.loads(frame))

    async def close(self):
        self.closed = True


class TestHealth:
    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestStartup:
    def test_rooms_from_previous_run_are_removed(self):
        db.init_db()
        db.create_room("stale", "hunter2")

        with TestClient(app):
            assert not db.room_exists("stale")


class TestCreateRoom:
    def test_create_new_room(self, client):
        response = client.post("/create-room", json={"name": "team-x", "password": "hunter2"})

        assert response.status_code == 201
        assert response.json() == {"name": "team-x", "created": True}
        assert db.room_exists("team-x")

    def test_existing_room_with_right_password(self, client):
        client.post("/create-room", json={"name": "team-x", "password": "hunter2"})

        response = client.post("/create-room", json={"name": "team-x", "password": "hunter2"})

        assert response.status_code == 200
        assert response.json() == {"name": "team-x", "created": False}

    def test_existing_room_with_wrong_password(self, client):
        client.post("/create-room", json={"name": "team-x", "password": "hunter2"})

        response = client.post("/create-room", json={"name": "team-x", "password": "wrong"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid password"

    @pytest.mark.parametrize("name", ["", "team x", "<script>", "a" * 51])
    def test_invalid_room_name(self, client, name):
        response = client.post("/create-room", json={"name": name, "password": "hunter2"})
        assert response.status_code == 400

    def test_missing_fields(self, client):
        response = client.post("/create-room", json={"name": "team-x"})
        assert response.status_code == 422

    def test_password_is_stored_hashed(self, client):
        client.post("/create-room", json={"name": "team-x", "password": "hunter2"})

        row = (
            db.get_connection()
            .execute("SELECT password_hash FROM rooms WHERE name = ?", ("team-x",))
            .fetchone()
        )
        assert row["password_hash"] != "hunter2"
        assert len(row["password_hash"]) == 64


class TestJoinRoom:
    def test_missing_room(self, client):
        response = client.post("/join-room", json={"name": "nowhere", "password": "hunter2"})
        assert response.status_code == 404

    def test_wrong_password(self, client):
        db.create_room("team-x", "hunter2")

        response = client.post("/join-room", json={"name": "team-x", "password": "wrong"})

        assert response.status_code == 401

    def test_right_password(self, client):
        db.create_room("team-x", "hunter2")

        response = client.post("/join-room", json={"name": "team-x", "password": "hunter2"})

        assert response.status_code == 200
        assert response.json() == {"name": "team-x"}


class TestRelaySocket:
    """Frame fan-out over WS /ws."""

    def test_message_reaches_room_including_sender(self, client):
        message = {
            "type": "message",
            "username": "alice#111111",
            "content": {"encrypted": [1, 2, 3], "iv": [0] * 12},
            "room": "team-x",
        }
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            join_and_sync(alice, "alice#111111")
            join_and_sync(bob, "bob#222222")
            # Bob's sync typing also reaches alice
            assert alice.receive_json()["username"] == "bob#222222"

            alice.send_text(json.dumps(message))

            assert bob.receive_json() == message
            assert alice.receive_json() == message

    def test_username_is_stamped_by_relay(self, client):
        with client.websocket_connect("/ws") as alice:
            join_and_sync(alice, "alice#111111")

            alice.send_text(
                json.dumps({"type": "typing", "username": "mallory#999999", "room": "team-x"})
            )

            assert alice.receive_json()["username"] == "alice#111111"

    def test_frames_before_join_are_dropped(self, client):
        with client.websocket_connect("/ws") as alice:
            alice.send_text(
                json.dumps(
                    {
                        "type": "message",
                        "username": "alice#111111",
                        "content": {"encrypted": [1], "iv": [0] * 12},
                        "room": "team-x",
                    }
                )
            )
            echo = join_and_sync(alice, "alice#111111")

            assert echo == {"type": "typing", "username": "alice#111111", "room": "team-x"}

    def test_invalid_frames_keep_connection(self, client):
        with client.websocket_connect("/ws") as alice:
            alice.send_text("not json")
            alice.send_text("[1, 2, 3]")
            alice.send_text(HUGE_INTEGER_FRAME)
            alice.send_text(DEEPLY_NESTED_FRAME)
            alice.send_text(frame("join", "alice", "bad room"))

            echo = join_and_sync(alice, "alice#111111")

            assert echo["room"] == "team-x"


class TestRoomHub:
    """RoomHub routing with fake sockets."""

    @pytest.mark.asyncio
    async def test_broadcast_is_per_room(self):
        hub = RoomHub()
        alice, bob, dave = FakeSocket(), FakeSocket(), FakeSocket()
        members = [hub.connect(ws) for ws in (alice, bob, dave)]
        await hub.handle_frame(members[0], frame("join", "alice", "x"))
        await hub.handle_frame(members[1], frame("join", "bob", "x"))
        await hub.handle_frame(members[2], frame("join", "dave", "y"))

        await hub.handle_frame(members[0], frame("typing", "alice", "x"))

        assert len(alice.sent) == 1
        assert len(bob.sent) == 1
        assert dave.sent == []
        assert hub.member_count("x") == 2

    @pytest.mark.asyncio
    async def test_frame_for_other_room_is_dropped(self):
        hub = RoomHub()
        alice, dave = FakeSocket(), FakeSocket()
        a, d = hub.connect(alice), hub.connect(dave)
        await hub.handle_frame(a, frame("join", "alice", "x"))
        await hub.handle_frame(d, frame("join", "dave", "y"))

        await hub.handle_frame(a, frame("typing", "alice", "y"))

        assert alice.sent == []
        assert dave.sent == []

    @pytest.mark.asyncio
    async def test_unknown_type_is_dropped(self):
        hub = RoomHub()
        alice = FakeSocket()
        a = hub.connect(alice)
        await hub.handle_frame(a, frame("join", "alice", "x"))

        await hub.handle_frame(a, frame("presence", "alice", "x"))

        assert alice.sent == []

    @pytest.mark.asyncio
    async def test_last_member_leaving_empties_room(self):
        emptied = []

        async def on_room_empty(room):
            emptied.append(room)

        hub = RoomHub(on_room_empty=on_room_empty)
        a, b = hub.connect(FakeSocket()), hub.connect(FakeSocket())
        await hub.handle_frame(a, frame("join", "alice", "x"))
        await hub.handle_frame(b, frame("join", "bob", "x"))

        await hub.disconnect(a)
        assert emptied == []
        assert hub.member_count("x") == 1

        await hub.disconnect(b)
        assert emptied == ["x"]
        assert hub.member_count("x") == 0

    @pytest.mark.asyncio
    async def test_disconnect_twice_counts_once(self):
        emptied = []

        async def on_room_empty(room):
            emptied.append(room)

        hub = RoomHub(on_room_empty=on_room_empty)
        a = hub.connect(FakeSocket())
        await hub.handle_frame(a, frame("join", "alice", "x"))

        await hub.disconnect(a)
        await hub.disconnect(a)

        assert emptied == ["x"]

    @pytest.mark.asyncio
    async def test_rejoin_moves_member(self):
        emptied = []

        async def on_room_empty(room):
            emptied.append(room)

        hub = RoomHub(on_room_empty=on_room_empty)
        a = hub.connect(FakeSocket())
        await hub.handle_frame(a, frame("join", "alice", "x"))
        await hub.handle_frame(a, frame("join", "alice", "y"))

        assert emptied == ["x"]
        assert hub.member_count("y") == 1

    @pytest.mark.asyncio
    async def test_failed_send_drops_member(self):
        hub = RoomHub()
        alice, broken = FakeSocket(), FakeSocket(fail=True)
        a, b = hub.connect(alice), hub.connect(broken)
        await hub.handle_frame(a, frame("join", "alice", "x"))
        await hub.handle_frame(b, frame("join", "bob", "x"))

        await hub.handle_frame(a, frame("typing", "alice", "x"))

        assert len(alice.sent) == 1
        assert broken.closed
        assert hub.member_count("x") == 1

    @pytest.mark.asyncio
    async def test_unparseable_frames_are_dropped(self):
        hub = RoomHub()
        alice = FakeSocket()
        a = hub.connect(alice)

        await hub.handle_frame(a, HUGE_INTEGER_FRAME)
        await hub.handle_frame(a, DEEPLY_NESTED_FRAME)

        assert a.room is None
        assert hub.member_count("x") == 0
        assert alice.sent == []

    @pytest.mark.asyncio
    async def test_invalid_room_name_is_not_joined(self):
        hub = RoomHub()
        a = hub.connect(FakeSocket())

        await hub.handle_frame(a, frame("join", "alice", "a b"))

        assert a.room is None

    @pytest.mark.asyncio
    async def test_empty_room_is_deleted_from_store(self):
        db.create_room("team-x", "hunter2")
        hub = RoomHub(on_room_empty=_delete_empty_room)
        a = hub.connect(FakeSocket())
        await hub.handle_frame(a, frame("join", "alice", "team-x"))

        await hub.disconnect(a)

        assert not db.room_exists("team-x")


class TestSanitize:
    def test_escapes_html(self):
        assert sanitize_input("<b>hi</b>") == "&lt;b&gt;hi&lt;/b&gt;"

    def test_strips_script_tags(self):
        assert sanitize_input("<script>alert(1)</script>") == "alert(1)"

    def test_plain_names_unchanged(self):
        assert sanitize_input("alice#123456") == "alice#123456"
