"""Configuration options for the hushroom client.

Provides HushroomOptions for the relay location and session timings.
Supports environment variable overrides for scripted and containerized use.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit, urlunsplit

DEFAULT_RELAY_URL = "http://localhost:8080"


class HushroomConfigError(Exception):
    """Raised when HushroomOptions configuration is invalid."""

    pass


@dataclass
class HushroomOptions:
    """Configuration options for the hushroom client.

    Environment Variables:
        HUSHROOM_URL: Relay base URL, used when `url` is not given

    Examples:
        # Default relay (or $HUSHROOM_URL)
        options = HushroomOptions()

        # Explicit relay behind TLS
        options = HushroomOptions(url="https://chat.example.com")
    """

    url: str | None = None
    """Relay base URL (http:// or https://)."""

    timeout: float = 30.0
    """Timeout in seconds for registration requests and opening the transport."""

    typing_window: float = 1.0
    """Seconds before a remote typing indicator lapses."""

    local_typing_window: float = 1.5
    """Seconds after the last keystroke before local typing is considered stopped."""

    _resolved_url: str = field(default=DEFAULT_RELAY_URL, repr=False)

    def __post_init__(self) -> None:
        """Validate options and apply environment variable overrides."""
        self._apply_env_overrides()
        self._validate()
        self._resolved_url = (self.url or DEFAULT_RELAY_URL).rstrip("/")

    def _apply_env_overrides(self) -> None:
        """Explicit options take priority over the environment."""
        if self.url is None:
            self.url = os.environ.get("HUSHROOM_URL") or None

    def _validate(self) -> None:
        if self.url is not None:
            parts = urlsplit(self.url)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                raise HushroomConfigError(
                    f"Relay URL must be an absolute http:// or https:// URL, got {self.url!r}"
                )

        for name in ("timeout", "typing_window", "local_typing_window"):
            if getattr(self, name) <= 0:
                raise HushroomConfigError(f"{name} must be positive")

    @property
    def resolved_url(self) -> str:
        """Relay base URL without a trailing slash."""
        return self._resolved_url

    @property
    def ws_url(self) -> str:
        """WebSocket endpoint of the relay (http -> ws, https -> wss)."""
        parts = urlsplit(self._resolved_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        path = parts.path.rstrip("/") + "/ws"
        return urlunsplit((scheme, parts.netloc, path, "", ""))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (for debugging/logging)."""
        return {
            "url": self._resolved_url,
            "ws_url": self.ws_url,
            "timeout": self.timeout,
            "typing_window": self.typing_window,
            "local_typing_window": self.local_typing_window,
        }
