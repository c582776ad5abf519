"""Message-oriented transports for chat sessions.

Architecture:
    - Transport ABC defines the interface a ChatSession drives
    - WebSocketTransport talks to a relay over ws:// or wss://
    - InMemoryTransport is a queue-backed stand-in for tests and the
      in-process LoopbackRelay

A transport carries text frames in both directions, in order, over one
logical channel. Any failure of the channel surfaces as TransportError;
a clean close by either side simply ends the frame stream.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when the connection to the relay fails or drops."""

    pass


class Transport(ABC):
    """Abstract bidirectional frame channel."""

    @abstractmethod
    async def open(self) -> None:
        """Open the channel.

        Raises:
            TransportError: If the connection cannot be established.
        """

    @abstractmethod
    async def send(self, frame: str) -> None:
        """Send one text frame.

        Raises:
            TransportError: If the channel is not open or the send fails.
        """

    @abstractmethod
    def frames(self) -> AsyncIterator[str]:
        """Iterate incoming frames in receipt order.

        Ends when the channel is closed cleanly; raises TransportError
        when it drops.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Safe to call more than once."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the channel has been closed by either side."""


class WebSocketTransport(Transport):
    """Transport over a WebSocket connection to the relay."""

    def __init__(self, url: str, *, open_timeout: float = 30.0) -> None:
        self._url = url
        self._open_timeout = open_timeout
        self._ws: Any = None
        self._closed = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        if self._closed:
            raise TransportError("Transport is closed")
        try:
            self._ws = await websockets.connect(self._url, open_timeout=self._open_timeout)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            self._closed = True
            raise TransportError(f"Unable to connect to {self._url}: {e}") from e
        logger.debug(f"WebSocket connected to {self._url}")

    async def send(self, frame: str) -> None:
        if self._ws is None or self._closed:
            raise TransportError("Transport is not open")
        try:
            await self._ws.send(frame)
        except ConnectionClosed as e:
            self._closed = True
            raise TransportError(f"Connection closed: {e}") from e

    async def frames(self) -> AsyncIterator[str]:
        if self._ws is None:
            raise TransportError("Transport is not open")
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                yield message
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as e:
            raise TransportError(f"Connection lost: {e}") from e
        finally:
            self._closed = True

    async def close(self) -> None:
        self._closed = True
        if self._ws is not None:
            await self._ws.close()


class _Disconnect:
    """Sentinel queued to end an InMemoryTransport frame stream."""

    def __init__(self, error: str | None = None) -> None:
        self.error = error


SendHook = Callable[["InMemoryTransport", str], "Awaitable[None] | None"]


class InMemoryTransport(Transport):
    """Queue-backed transport.

    Frames sent by the session are recorded in `sent` and handed to the
    optional `on_send` hook; frames for the session are pushed with feed().
    Call disconnect() to simulate the relay closing (or dropping) the
    connection.

    Example:
        transport = InMemoryTransport()
        session = ChatSession(transport)
        transport.feed('{"type": "typing", "username": "bob#100000", "room": "r"}')
    """

    def __init__(
        self,
        on_send: SendHook | None = None,
        *,
        fail_open: str | None = None,
    ) -> None:
        self.sent: list[str] = []
        self._on_send = on_send
        self._fail_open = fail_open
        self._inbox: asyncio.Queue[str | _Disconnect] = asyncio.Queue()
        self._opened = False
        self._closed = False

    @property
    def opened(self) -> bool:
        return self._opened

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        if self._closed:
            raise TransportError("Transport is closed")
        if self._fail_open is not None:
            self._closed = True
            raise TransportError(self._fail_open)
        self._opened = True

    async def send(self, frame: str) -> None:
        if not self._opened or self._closed:
            raise TransportError("Transport is not open")
        self.sent.append(frame)
        if self._on_send is not None:
            result = self._on_send(self, frame)
            if inspect.isawaitable(result):
                await result

    def feed(self, frame: str) -> None:
        """Queue a frame as if it arrived from the relay."""
        self._inbox.put_nowait(frame)

    def disconnect(self, error: str | None = None) -> None:
        """End the frame stream; with `error`, as an abrupt drop."""
        self._closed = True
        self._inbox.put_nowait(_Disconnect(error))

    def sent_json(self) -> list[dict]:
        """Frames sent so far, parsed as JSON."""
        return [json.loads(frame) for frame in self.sent]

    async def frames(self) -> AsyncIterator[str]:
        while True:
            item = await self._inbox.get()
            if isinstance(item, _Disconnect):
                if item.error is not None:
                    raise TransportError(item.error)
                return
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(_Disconnect())
