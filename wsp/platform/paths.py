"""User-level directories."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

__all__ = [
    "APP_NAME",
    "clear_caches",
    "data_dir_with",
    "home",
]

APP_NAME = "wsp"


@lru_cache(maxsize=1)
def home() -> Path:
    """User's home directory; HOME wins over pwd lookup for CI/containers."""
    home_env = os.environ.get("HOME")
    if home_env:
        return Path(home_env)
    return Path.home()


def data_dir_with(xdg_data_home: str | None, home_dir: Path) -> Path:
    """`$XDG_DATA_HOME/wsp`, or `~/.local/share/wsp` when XDG is unset or empty."""
    if xdg_data_home:
        return Path(xdg_data_home) / APP_NAME
    return home_dir / ".local" / "share" / APP_NAME


def clear_caches() -> None:
    """Forget the cached home directory (tests change HOME)."""
    home.cache_clear()
