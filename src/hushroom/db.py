"""Room store for the hushroom relay (SQLite).

The relay keeps one table: room name -> password hash. Rooms are created
on first registration and deleted when their last member disconnects.

Connection Management:
    # Thread-local connection from $HUSHROOM_DB (default: in-memory)
    init_db()
    create_room("team-x", "hunter2")

    # Persistent store
    HUSHROOM_DB=/var/lib/hushroom/rooms.db hushroom serve
"""

from __future__ import annotations

import os
import sqlite3
import threading
from datetime import datetime, timezone

from .auth import hash_password, verify_password

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS rooms (
    name TEXT PRIMARY KEY,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""

# Each thread gets its own SQLite connection (FastAPI runs sync endpoints
# in a thread pool)
_local = threading.local()


# --- Connection Management ---


def get_connection() -> sqlite3.Connection:
    """Get or create the current thread's database connection.

    The database comes from $HUSHROOM_DB; ":memory:" (the default) means a
    shared-cache in-memory database visible to every thread.

    Returns:
        SQLite connection with row_factory set to sqlite3.Row.
    """
    if getattr(_local, "conn", None) is None:
        db_path_env = os.environ.get("HUSHROOM_DB", ":memory:")

        if db_path_env == ":memory:":
            # Shared cache so all threads see the same rooms. The name
            # includes the PID so parallel test processes stay isolated.
            _local.conn = sqlite3.connect(
                f"file:hushroom_{os.getpid()}?mode=memory&cache=shared",
                uri=True,
                check_same_thread=False,
            )
        else:
            _local.conn = sqlite3.connect(db_path_env, check_same_thread=False)
            _local.conn.execute("PRAGMA journal_mode=WAL")
        _local.conn.execute("PRAGMA busy_timeout=5000")
        _local.conn.row_factory = sqlite3.Row

    return _local.conn


def close_db() -> None:
    """Close the current thread's connection."""
    if getattr(_local, "conn", None) is not None:
        _local.conn.close()
        _local.conn = None


def _get_conn(conn: sqlite3.Connection | None) -> sqlite3.Connection:
    """Use the provided conn or fall back to the thread-local one."""
    if conn is not None:
        return conn
    return get_connection()


# --- Schema ---


def init_db_with_conn(conn: sqlite3.Connection) -> None:
    """Initialize database schema with an explicit connection."""
    conn.executescript(SCHEMA_SQL)
    conn.commit()


def init_db() -> None:
    """Initialize database schema using the thread-local connection."""
    init_db_with_conn(get_connection())


def reset_db(conn: sqlite3.Connection | None = None) -> None:
    """Drop and recreate all tables (for testing)."""
    conn = _get_conn(conn)
    conn.executescript("DROP TABLE IF EXISTS rooms;")
    conn.commit()
    init_db_with_conn(conn)


# --- Rooms ---


def create_room(name: str, password: str, conn: sqlite3.Connection | None = None) -> dict:
    """Create a room.

    Raises:
        ValueError: If a room with this name already exists.
    """
    conn = _get_conn(conn)
    created_at = datetime.now(timezone.utc).isoformat()
    try:
        conn.execute(
            "INSERT INTO rooms (name, password_hash, created_at) VALUES (?, ?, ?)",
            (name, hash_password(password), created_at),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        raise ValueError(f"Room {name} already exists") from e
    return {"name": name, "created_at": created_at}


def get_room(name: str, conn: sqlite3.Connection | None = None) -> dict | None:
    """Get a room by name (without its password hash)."""
    conn = _get_conn(conn)
    row = conn.execute("SELECT name, created_at FROM rooms WHERE name = ?", (name,)).fetchone()
    return dict(row) if row else None


def room_exists(name: str, conn: sqlite3.Connection | None = None) -> bool:
    """Check whether a room exists."""
    return get_room(name, conn) is not None


def verify_room_password(name: str, password: str, conn: sqlite3.Connection | None = None) -> bool:
    """Check a password against a room. False if the room does not exist."""
    conn = _get_conn(conn)
    row = conn.execute("SELECT password_hash FROM rooms WHERE name = ?", (name,)).fetchone()
    if row is None:
        return False
    return verify_password(password, row["password_hash"])


def delete_room(name: str, conn: sqlite3.Connection | None = None) -> bool:
    """Delete a room. Returns True if it existed."""
    conn = _get_conn(conn)
    cursor = conn.execute("DELETE FROM rooms WHERE name = ?", (name,))
    conn.commit()
    return cursor.rowcount > 0


def list_rooms(conn: sqlite3.Connection | None = None) -> list[dict]:
    """List all rooms, oldest first."""
    conn = _get_conn(conn)
    rows = conn.execute("SELECT name, created_at FROM rooms ORDER BY created_at").fetchall()
    return [dict(row) for row in rows]
