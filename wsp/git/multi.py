"""Multi-repository operations.

Fetches are the only long, network-bound step in wsp, so they fan out over a
small thread pool. Each fetch carries its own timeout; a failure or timeout
in one repository never cancels the others. Results come back in the order
the repositories were given, whatever order they finish in.

Usage:
    from wsp.git.multi import fetch_all

    outcomes = fetch_all(repos, "origin", prune=True, timeout=180)
    for o in outcomes:
        if o.error is not None:
            console.warning(o.error.message)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from wsp.core.config import DEFAULT_FETCH_TIMEOUT, default_fetch_jobs
from wsp.core.errors import FetchFailed
from wsp.core.result import Err, Ok
from wsp.git.repository import Repository

__all__ = [
    "FetchOutcome",
    "fetch_all",
    "run_parallel",
]


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    """Result of fetching one repository.

    Attributes:
        repo: Repository label (canonical identity)
        error: The failure, None on success
    """

    repo: str
    error: FetchFailed | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_parallel[T, R](
    items: Sequence[T],
    fn: Callable[[T], R],
    *,
    max_workers: int | None = None,
) -> list[R]:
    """Apply `fn` to every item concurrently; results in input order."""
    if not items:
        return []
    workers = max(1, min(max_workers or default_fetch_jobs(), len(items)))
    if workers == 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(fn, item) for item in items]
        return [f.result() for f in futures]


def fetch_all(
    repos: Sequence[Repository],
    remote: str,
    *,
    prune: bool = False,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    max_workers: int | None = None,
) -> list[FetchOutcome]:
    """Fetch `remote` in every repository concurrently.

    Args:
        repos: Repositories to fetch
        remote: Remote name ("origin" for upstream, "wsp-mirror" in clones)
        prune: Pass `--prune`
        timeout: Per-repository timeout in seconds
        max_workers: Pool size (defaults to min(8, cpu count))

    Returns:
        One FetchOutcome per repository, in input order
    """

    def _one(repo: Repository) -> FetchOutcome:
        match repo.fetch(remote, prune=prune, timeout=timeout):
            case Ok(_):
                return FetchOutcome(repo=repo.label)
            case Err(error):
                return FetchOutcome(repo=repo.label, error=error)

    return run_parallel(repos, _one, max_workers=max_workers)

