"""FastAPI relay for hushroom.

The relay never sees plaintext or keys. It:
- registers rooms and checks room passwords (POST /create-room, /join-room)
- fans typing and message frames out to every connection in the same room
  (WS /ws)
- forgets a room once its last member disconnects
"""

import asyncio
import functools
import html
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, HTTPException, Response, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from . import db
from ._version import __version__
from .registration import validate_name

logger = logging.getLogger(__name__)

BROADCAST_TYPES = ("typing", "message")


async def _run_sync(fn, *args):
    """Run a synchronous function off the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args))


def sanitize_input(value: str) -> str:
    """HTML-escape a user-supplied name and strip escaped script tags."""
    sanitized = html.escape(value)
    sanitized = sanitized.replace("&lt;script&gt;", "")
    sanitized = sanitized.replace("&lt;/script&gt;", "")
    return sanitized


# --- Room fan-out ---


@dataclass
class Member:
    """One WebSocket connection and the room it joined, if any."""

    websocket: Any
    username: str | None = None
    room: str | None = None


class RoomHub:
    """Tracks connections per room and broadcasts frames between them.

    All methods run on the event loop; there is no locking.

    Args:
        on_room_empty: Awaited with the room name when its last member leaves
    """

    def __init__(self, on_room_empty: Callable[[str], Awaitable[None]] | None = None) -> None:
        self._members: dict[int, Member] = {}
        self._room_counts: dict[str, int] = {}
        self._on_room_empty = on_room_empty

    def connect(self, websocket: Any) -> Member:
        member = Member(websocket=websocket)
        self._members[id(websocket)] = member
        return member

    async def disconnect(self, member: Member) -> None:
        if self._members.pop(id(member.websocket), None) is None:
            return
        if member.room is not None:
            await self._update_room_count(member.room, -1)

    def member_count(self, room: str) -> int:
        return self._room_counts.get(room, 0)

    async def handle_frame(self, member: Member, raw: str) -> None:
        """Route one frame from `member`. Invalid frames are dropped."""
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError):
            logger.warning("Dropping frame that is not JSON")
            return
        if not isinstance(data, dict):
            logger.warning("Dropping frame that is not a JSON object")
            return

        username = sanitize_input(str(data.get("username", "")))
        room = sanitize_input(str(data.get("room", "")))
        if not validate_name(room):
            logger.warning(f"Invalid room name attempt: {room}")
            return

        kind = data.get("type")
        if kind == "join":
            await self._join(member, username, room)
            return

        if kind not in BROADCAST_TYPES:
            logger.debug(f"Dropping frame of unknown type {kind!r}")
            return
        if member.room is None:
            logger.warning("Dropping frame sent before join")
            return
        if room != member.room:
            logger.warning(f"Dropping frame for room {room} from member of {member.room}")
            return

        # Senders cannot speak under another member's name
        data["username"] = member.username
        data["room"] = room
        await self.broadcast(room, data)

    async def broadcast(self, room: str, payload: dict) -> None:
        """Send `payload` to every member of `room`, sender included."""
        frame = json.dumps(payload)
        for member in [m for m in self._members.values() if m.room == room]:
            try:
                await member.websocket.send_text(frame)
            except Exception:
                logger.warning(f"Dropping member {member.username} after failed send", exc_info=True)
                await self.disconnect(member)
                try:
                    await member.websocket.close()
                except Exception:
                    logger.debug("Error closing dropped websocket", exc_info=True)

    async def _join(self, member: Member, username: str, room: str) -> None:
        if member.room is not None:
            await self._update_room_count(member.room, -1)
        member.username = username
        member.room = room
        await self._update_room_count(room, 1)
        logger.info(f"{username} joined room {room}")

    async def _update_room_count(self, room: str, delta: int) -> None:
        count = self._room_counts.get(room, 0) + delta
        if count > 0:
            self._room_counts[room] = count
            return

        self._room_counts.pop(room, None)
        if self._on_room_empty is not None:
            await self._on_room_empty(room)


async def _delete_empty_room(room: str) -> None:
    if await _run_sync(db.delete_room, room):
        logger.info(f'Room "{room}" deleted due to inactivity')


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the room store and the hub.

    Nobody is connected at startup, so rooms left in a persistent store by a
    previous run are removed.
    """
    db.init_db()
    stale = db.list_rooms()
    for room in stale:
        db.delete_room(room["name"])
    if stale:
        logger.info(f"Removed {len(stale)} rooms left over from a previous run")
    app.state.hub = RoomHub(on_room_empty=_delete_empty_room)
    yield
    db.close_db()


app = FastAPI(
    title="hushroom relay",
    description="Relay for end-to-end encrypted chat rooms",
    version=__version__,
    lifespan=lifespan,
)


# --- Request Models ---


class RoomRequest(BaseModel):
    name: str
    password: str


def _validated_room_name(request: RoomRequest) -> str:
    name = sanitize_input(request.name)
    if not validate_name(name):
        raise HTTPException(400, "Invalid room name")
    return name


# --- Endpoints ---


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/create-room", status_code=201)
def create_room(request: RoomRequest, response: Response):
    """Create a room, or check the password of an existing one.

    Returns 201 when the room was created and 200 when it already existed.
    """
    name = _validated_room_name(request)

    if not db.room_exists(name):
        try:
            db.create_room(name, request.password)
            return {"name": name, "created": True}
        except ValueError:
            # Created concurrently; fall through to the password check
            pass

    if not db.verify_room_password(name, request.password):
        raise HTTPException(401, "Invalid password")

    response.status_code = 200
    return {"name": name, "created": False}


@app.post("/join-room")
def join_room(request: RoomRequest):
    """Check the password of an existing room."""
    name = _validated_room_name(request)

    if not db.room_exists(name):
        raise HTTPException(404, "Room not found")
    if not db.verify_room_password(name, request.password):
        raise HTTPException(401, "Invalid password")

    return {"name": name}


@app.websocket("/ws")
async def relay_socket(websocket: WebSocket):
    """Relay frames between members of the same room."""
    hub: RoomHub = websocket.app.state.hub
    await websocket.accept()
    member = hub.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            await hub.handle_frame(member, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(member)
