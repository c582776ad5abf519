"""CLI for hushroom.

Manages configuration in ~/.config/hushroom/config.yaml (relay URL and
default username), joins encrypted rooms from the terminal, and runs the
relay server.
"""

from __future__ import annotations

import asyncio
import getpass
import logging
import os
import sys
import threading

import cyclopts

from .client import Hushroom
from .config import GlobalConfig, get_config_dir, init_wizard
from .crypto import DerivationError
from .events import Connected, MessageReceived, SessionClosed, TypingIndicator
from .options import HushroomConfigError, HushroomOptions
from .registration import CredentialError
from .session import ChatSession, SessionState
from .transport import TransportError

app = cyclopts.App(
    name="hushroom",
    help="End-to-end encrypted chat rooms",
)


def get_config() -> GlobalConfig:
    """Get global config, running wizard if needed."""
    if not GlobalConfig.exists():
        print("No configuration found. Let's set one up.\n")
        return init_wizard()
    return GlobalConfig.load()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# --- Init Command ---


@app.command
def init():
    """Initialize hushroom configuration.

    Runs an interactive wizard to set up:
    - Relay URL
    - Default username
    """
    if GlobalConfig.exists():
        confirm = input("Configuration already exists. Overwrite? [y/N] ")
        if confirm.lower() != "y":
            print("Cancelled.")
            return

    init_wizard()


@app.command
def config():
    """Show current configuration."""
    cfg = get_config()
    print(f"Config directory: {get_config_dir()}")
    print(f"Relay URL: {cfg.url}")
    print(f"Username: {cfg.username or '(not set)'}")


# --- Chat ---


@app.command
def join(
    room: str,
    *,
    username: str | None = None,
    url: str | None = None,
    create: bool = True,
    verbose: bool = False,
):
    """Join an encrypted room and chat from the terminal.

    Every line you type is encrypted and sent to the room. Type /quit
    (or press Ctrl+D) to leave.

    Args:
        room: Room name
        username: Name shown to the room (defaults to the configured one)
        url: Relay URL (defaults to $HUSHROOM_URL, then the configured one)
        create: Create the room if it does not exist
        verbose: Log debug output to stderr
    """
    configure_logging(verbose)
    cfg = GlobalConfig.load()

    username = username or cfg.username or input("Username: ").strip()
    password = getpass.getpass("Room password: ")

    try:
        options = HushroomOptions(url=url or os.environ.get("HUSHROOM_URL") or cfg.url)
    except HushroomConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        code = asyncio.run(_chat(options, room, password, username, create))
    except KeyboardInterrupt:
        print("\nStopped.")
        return
    if code:
        sys.exit(code)


async def _chat(
    options: HushroomOptions,
    room: str,
    password: str,
    username: str,
    create: bool,
) -> int:
    """Run one chat session until the user quits or the relay disconnects."""
    client = Hushroom(options)
    try:
        session = await client.join(room, password, username, create=create)
    except (ValueError, CredentialError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except DerivationError:
        print("Error: Encryption initialization failed", file=sys.stderr)
        return 1
    except TransportError as e:
        print(f"Error: Connection closed ({e})", file=sys.stderr)
        return 1

    runner = asyncio.create_task(session.run())
    printer = asyncio.create_task(_print_events(session))
    sender = asyncio.create_task(_send_input(session))

    await asyncio.wait({printer, sender}, return_when=asyncio.FIRST_COMPLETED)
    sender.cancel()
    await session.close("Left room")
    await runner
    await printer
    return 0


async def _print_events(session: ChatSession) -> None:
    while True:
        event = await session.events.get()
        if isinstance(event, Connected):
            print(f"Joined room {event.room} as {event.username}. Type /quit to leave.")
        elif isinstance(event, TypingIndicator):
            if event.username:
                print(f"{event.username} is typing...")
        elif isinstance(event, MessageReceived):
            stamp = event.received_at.astimezone().strftime("%H:%M:%S")
            who = f"{event.username} (you)" if event.is_own else event.username
            print(f"[{stamp}] {who}: {event.text}")
        elif isinstance(event, SessionClosed):
            print(f"Connection closed: {event.reason}", file=sys.stderr)
            return


def _start_stdin_reader(queue: asyncio.Queue[str | None]) -> None:
    """Pump stdin lines into `queue` from a daemon thread (None at EOF)."""
    loop = asyncio.get_running_loop()

    def pump() -> None:
        try:
            for line in sys.stdin:
                loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\n"))
            loop.call_soon_threadsafe(queue.put_nowait, None)
        except RuntimeError:
            # Event loop already closed
            return

    threading.Thread(target=pump, name="stdin", daemon=True).start()


async def _send_input(session: ChatSession) -> None:
    lines: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(lines)

    while True:
        line = await lines.get()
        if line is None or line.strip() == "/quit":
            return
        if session.state is not SessionState.CONNECTED:
            return
        try:
            await session.send_message(line)
        except TransportError:
            return


# --- Server Command ---


@app.command
def serve(
    *,
    host: str = "localhost",
    port: int = 8080,
    db: str | None = None,
    reload: bool = False,
):
    """Run the hushroom relay.

    Args:
        host: Interface to bind
        port: Port to listen on
        db: SQLite file for the room store (default: in-memory)
        reload: Reload on code changes (development)
    """
    import uvicorn

    if db:
        os.environ["HUSHROOM_DB"] = db

    uvicorn.run(
        "hushroom.relay:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
