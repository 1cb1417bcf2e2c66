"""Runtime configuration.

wsp has two kinds of settings:

- locations and timeouts, resolved once per invocation from the environment
  (`Paths`);
- user preferences persisted in the registry file (`branch_prefix`, see
  `wsp.core.registry`).

Environment variables:
    WSP_DATA_DIR         data directory (registry + mirrors)
    XDG_DATA_HOME        used when WSP_DATA_DIR is unset (`$XDG_DATA_HOME/wsp`)
    WSP_WORKSPACES_DIR   where workspaces are created (default `~/dev/workspaces`)
    WSP_FETCH_TIMEOUT    per-repository network timeout in seconds (default 180)
    WSP_FETCH_JOBS       parallel fetch workers (default min(8, cpu count))
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from wsp.platform.paths import data_dir_with, home

__all__ = [
    "DEFAULT_FETCH_TIMEOUT",
    "METADATA_FILE",
    "REGISTRY_FILE",
    "Paths",
    "default_fetch_jobs",
]

REGISTRY_FILE = "registry.json"
METADATA_FILE = ".wsp.json"

DEFAULT_FETCH_TIMEOUT = 180.0


def default_fetch_jobs() -> int:
    return min(8, os.cpu_count() or 1)


def _positive_float(raw: str | None, default: float) -> float:
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _positive_int(raw: str | None, default: int) -> int:
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True, slots=True)
class Paths:
    """Resolved locations for one invocation.

    Attributes:
        data_dir: Root of wsp's own data
        workspaces_dir: Parent directory of all workspaces
        fetch_timeout: Seconds before a single network fetch is abandoned
        fetch_jobs: Upper bound on concurrent fetches
    """

    data_dir: Path
    workspaces_dir: Path
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    fetch_jobs: int = 8

    @property
    def registry_path(self) -> Path:
        return self.data_dir / REGISTRY_FILE

    @property
    def mirrors_dir(self) -> Path:
        return self.data_dir / "mirrors"

    def workspace_dir(self, name: str) -> Path:
        return self.workspaces_dir / name

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Paths:
        """Resolve paths from environment variables (defaults to `os.environ`)."""
        environ = os.environ if env is None else env
        home_dir = home()

        data_override = environ.get("WSP_DATA_DIR")
        if data_override:
            data_dir = Path(data_override).expanduser()
        else:
            data_dir = data_dir_with(environ.get("XDG_DATA_HOME"), home_dir)

        ws_override = environ.get("WSP_WORKSPACES_DIR")
        if ws_override:
            workspaces_dir = Path(ws_override).expanduser()
        else:
            workspaces_dir = home_dir / "dev" / "workspaces"

        return cls(
            data_dir=data_dir,
            workspaces_dir=workspaces_dir,
            fetch_timeout=_positive_float(environ.get("WSP_FETCH_TIMEOUT"), DEFAULT_FETCH_TIMEOUT),
            fetch_jobs=_positive_int(environ.get("WSP_FETCH_JOBS"), default_fetch_jobs()),
        )
