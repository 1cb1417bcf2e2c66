"""Git operations module.

This module provides abstractions for git operations:
- Repository: Single repository operations (clones and bare mirrors)
- Parallel fetch across repositories
- Branch safety classification

Usage:
    from wsp.git import Repository, fetch_all

    repo = Repository(Path("/path/to/clone"), label="github.com/acme/api")
    status = repo.status()
    if status.is_ok():
        print(f"Branch: {status.unwrap().branch}")

    for outcome in fetch_all(repos, "origin", prune=True):
        if not outcome.ok:
            print(f"{outcome.repo}: {outcome.error.message}")
"""

from .multi import FetchOutcome, fetch_all, run_parallel
from .repository import GitStatus, Repository, StatusEntry
from .runner import GitRunner, SubprocessGit
from .safety import Classification, classify, classify_member

__all__ = [
    "Classification",
    "FetchOutcome",
    "GitRunner",
    "GitStatus",
    "Repository",
    "StatusEntry",
    "SubprocessGit",
    "classify",
    "classify_member",
    "fetch_all",
    "run_parallel",
]
