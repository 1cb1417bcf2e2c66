"""Subprocess execution.

`execute()` always returns a `CommandOutput` (stdout, stderr, exit code),
even when the process could not be started or timed out. The exit code is
the caller's to interpret: `git merge-base --is-ancestor` exits 1 for "no",
not for "failed".
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

__all__ = ["CommandOutput", "TIMEOUT_EXIT", "execute"]

# Exit code reported for a process killed by its timeout or never started.
TIMEOUT_EXIT = -1


@dataclass(frozen=True, slots=True)
class CommandOutput:
    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def execute(
    cmd: list[str],
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> CommandOutput:
    """Execute a command, capturing output. Never raises for process failures.

    Args:
        cmd: Command and arguments.
        cwd: Working directory (None for the current one).
        env: Extra environment variables layered over `os.environ`.
        timeout: Maximum seconds to wait (None for no limit).
    """
    full_env = None
    if env:
        full_env = {**os.environ, **env}

    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            env=full_env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        stdout = e.stdout if isinstance(e.stdout, str) else ""
        return CommandOutput(
            command=tuple(cmd),
            returncode=TIMEOUT_EXIT,
            stdout=stdout,
            stderr=f"Command timed out after {timeout}s",
            timed_out=True,
        )
    except OSError as e:
        return CommandOutput(
            command=tuple(cmd),
            returncode=TIMEOUT_EXIT,
            stdout="",
            stderr=str(e),
        )

    return CommandOutput(
        command=tuple(cmd),
        returncode=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )
