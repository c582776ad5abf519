"""Typing notifications in both directions.

Outgoing: every local input change sends a typing envelope. There is no
outgoing throttling; the local countdown only tracks whether the user is
still typing.

Incoming: a remote typing envelope shows the indicator and (re)starts a
countdown. When the countdown lapses without a refresh, the indicator is
cleared.

Timers run on the current asyncio event loop via loop.call_later, so all
methods must be called from inside the loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

REMOTE_TYPING_WINDOW = 1.0
LOCAL_TYPING_WINDOW = 1.5


class TypingIndicatorDebouncer:
    """Tracks local and remote typing state for one session.

    Args:
        send_typing: Coroutine function sending one typing envelope
        on_indicator: Called with a username when the indicator shows,
            and with None when it clears
        window: Seconds before a remote indicator lapses
        local_window: Seconds before local typing is considered stopped
    """

    def __init__(
        self,
        send_typing: Callable[[], Awaitable[None]],
        on_indicator: Callable[[str | None], None],
        *,
        window: float = REMOTE_TYPING_WINDOW,
        local_window: float = LOCAL_TYPING_WINDOW,
    ) -> None:
        self._send_typing = send_typing
        self._on_indicator = on_indicator
        self._window = window
        self._local_window = local_window
        self._indicator: str | None = None
        self._remote_timer: asyncio.TimerHandle | None = None
        self._local_timer: asyncio.TimerHandle | None = None

    @property
    def indicator(self) -> str | None:
        """Username currently shown as typing, if any."""
        return self._indicator

    @property
    def local_typing(self) -> bool:
        """True while the local countdown is running."""
        return self._local_timer is not None

    async def notify_local_typing(self) -> None:
        """Record a local input change and notify the room."""
        loop = asyncio.get_running_loop()
        if self._local_timer is not None:
            self._local_timer.cancel()
        self._local_timer = loop.call_later(self._local_window, self._local_lapsed)
        await self._send_typing()

    def remote_typing(self, username: str) -> None:
        """Show `username` as typing and restart the lapse countdown."""
        loop = asyncio.get_running_loop()
        if self._remote_timer is not None:
            self._remote_timer.cancel()
        self._remote_timer = loop.call_later(self._window, self._remote_lapsed)
        self._indicator = username
        self._on_indicator(username)

    def cancel(self) -> None:
        """Drop pending countdowns without emitting anything."""
        if self._remote_timer is not None:
            self._remote_timer.cancel()
            self._remote_timer = None
        if self._local_timer is not None:
            self._local_timer.cancel()
            self._local_timer = None
        self._indicator = None

    def _remote_lapsed(self) -> None:
        self._remote_timer = None
        if self._indicator is None:
            return
        logger.debug(f"Typing indicator for {self._indicator} lapsed")
        self._indicator = None
        self._on_indicator(None)

    def _local_lapsed(self) -> None:
        self._local_timer = None
