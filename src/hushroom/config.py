"""Configuration file for the hushroom CLI.

Stored at $XDG_CONFIG_HOME/hushroom/config.yaml (default ~/.config):
- url: relay base URL
- username: default username for `hushroom join`

Passwords are never written to the config file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .options import DEFAULT_RELAY_URL
from .registration import validate_name


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(config_home) / "hushroom"


def get_global_config_path() -> Path:
    """Get the global config file path."""
    return get_config_dir() / "config.yaml"


@dataclass
class GlobalConfig:
    """Global CLI configuration."""

    url: str = DEFAULT_RELAY_URL
    username: str | None = None

    def save(self) -> None:
        """Save config to file."""
        get_config_dir().mkdir(parents=True, exist_ok=True)
        path = get_global_config_path()

        data: dict[str, Any] = {"url": self.url}
        if self.username:
            data["username"] = self.username

        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load(cls) -> "GlobalConfig":
        """Load config from file, or return defaults."""
        path = get_global_config_path()

        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(
            url=data.get("url", DEFAULT_RELAY_URL),
            username=data.get("username"),
        )

    @classmethod
    def exists(cls) -> bool:
        """Check if config file exists."""
        return get_global_config_path().exists()


def init_wizard() -> GlobalConfig:
    """Interactive wizard for initial configuration."""
    print("Welcome to hushroom!")
    print("Let's set up your configuration.\n")

    url = input(f"Relay URL [{DEFAULT_RELAY_URL}]: ").strip()
    if not url:
        url = DEFAULT_RELAY_URL

    print("\nYour username is shown to everyone in the room.")
    print("Use letters, numbers, hyphens, underscores and dots.\n")

    username: str | None = input("Default username (optional): ").strip() or None
    if username is not None and not validate_name(username):
        print("Invalid username, leaving it unset.")
        username = None

    config = GlobalConfig(url=url, username=username)
    config.save()

    print(f"\nConfiguration saved to {get_global_config_path()}")
    return config
