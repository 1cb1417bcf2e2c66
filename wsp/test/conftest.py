"""Shared fixtures: isolated git environment and throwaway upstream repositories."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pytest

from wsp.core.config import Paths
from wsp.core.registry import Registry
from wsp.output.console import MockConsole
from wsp.platform.paths import clear_caches


def run_git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise RuntimeError(
            f"git {' '.join(args)} failed (code {result.returncode}): {result.stderr.strip()}"
        )
    return result.stdout.strip()


@dataclass
class Upstream:
    """A bare "remote" plus a working seed clone that pushes to it."""

    remote: Path
    seed: Path

    @property
    def url(self) -> str:
        return self.remote.as_uri()

    def commit(self, filename: str, content: str, message: str) -> str:
        (self.seed / filename).write_text(content, encoding="utf-8")
        run_git(self.seed, "add", filename)
        run_git(self.seed, "commit", "-m", message)
        return run_git(self.seed, "rev-parse", "HEAD")

    def push(self, *refs: str) -> None:
        run_git(self.seed, "push", "origin", *(refs or ("main",)))

    def git(self, *args: str) -> str:
        return run_git(self.seed, *args)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from the user's git config and wsp settings."""
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    for name in ("WSP_JSON", "WSP_DATA_DIR", "WSP_WORKSPACES_DIR", "WSP_FETCH_TIMEOUT", "WSP_FETCH_JOBS"):
        monkeypatch.delenv(name, raising=False)
    clear_caches()


@pytest.fixture
def git() -> Callable[..., str]:
    return run_git


@pytest.fixture
def make_upstream(tmp_path: Path) -> Callable[[str, str], Upstream]:
    """Factory: `make_upstream("acme", "api")` -> Upstream with one pushed commit on main."""

    def _make(owner: str, name: str) -> Upstream:
        remote = tmp_path / "remotes" / owner / f"{name}.git"
        seed = tmp_path / "seeds" / owner / name
        remote.parent.mkdir(parents=True, exist_ok=True)
        seed.mkdir(parents=True)

        run_git(remote.parent, "init", "--bare", "--initial-branch=main", str(remote))
        run_git(seed, "init", "-b", "main")
        upstream = Upstream(remote=remote, seed=seed)
        upstream.commit("README.md", f"{name}\n", "init")
        run_git(seed, "remote", "add", "origin", upstream.url)
        run_git(seed, "push", "-u", "origin", "main")
        return upstream

    return _make


@pytest.fixture
def paths(tmp_path: Path) -> Paths:
    return Paths(
        data_dir=tmp_path / "data",
        workspaces_dir=tmp_path / "workspaces",
        fetch_timeout=60.0,
        fetch_jobs=4,
    )


@pytest.fixture
def registry() -> Registry:
    return Registry()


@pytest.fixture
def console() -> MockConsole:
    return MockConsole()
