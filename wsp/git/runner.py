"""The narrow seam between wsp and the `git` executable.

Everything that talks to git goes through a `GitRunner`. The production
runner shells out; tests can substitute a scripted runner without patching
`subprocess`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

from wsp.platform.process import CommandOutput, execute

__all__ = ["GIT_TIMEOUT", "GitRunner", "SubprocessGit"]

GIT_TIMEOUT = 30.0


class GitRunner(Protocol):
    def run(
        self,
        args: Sequence[str],
        cwd: Path | None,
        *,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandOutput: ...


class SubprocessGit:
    """Run `git` as a subprocess. Local commands default to a 30s timeout."""

    def __init__(self, executable: str = "git") -> None:
        self._executable = executable

    def run(
        self,
        args: Sequence[str],
        cwd: Path | None,
        *,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandOutput:
        return execute(
            [self._executable, *args],
            cwd=cwd,
            env=env,
            timeout=GIT_TIMEOUT if timeout is None else timeout,
        )
