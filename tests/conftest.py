"""Shared pytest configuration and fixtures."""

import os

# Set environment variables before any imports
os.environ["HUSHROOM_DB"] = ":memory:"
os.environ.pop("HUSHROOM_URL", None)


import pytest
from hushroom import db
from hushroom.testing import hushroom_client, loopback_relay, registrar, room_key  # noqa: F401


@pytest.fixture(autouse=True, scope="function")
def reset_database():
    """Reset the relay's room store before each test function.

    The in-memory database uses a shared cache, so dropping the tables
    through this thread's connection clears them for every thread.
    """
    conn = db.get_connection()
    db.reset_db(conn)
    yield
    db.close_db()
