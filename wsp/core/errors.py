"""Error taxonomy and exit codes.

Every expected failure in wsp is one of the frozen dataclasses below, returned
inside `Err(...)`. Each carries the data needed to act on it (which repository,
which operation) and a human-readable `message`. The CLI maps them to exit
codes and, in `--json` mode, renders them field by field (see
`wsp.output.render`).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Literal

from .verdict import BranchSafety

__all__ = [
    "ErrorCode",
    "InvalidIdentity",
    "PathTraversal",
    "AmbiguousIdentity",
    "NotFound",
    "AlreadyRegistered",
    "AlreadyExists",
    "InvalidName",
    "FetchFailed",
    "GitFailed",
    "DirtyWorkingTree",
    "UnpushedCommits",
    "UnsafeBranch",
    "RemovalBlocked",
    "RepoFailure",
    "PartialFailure",
    "StorageError",
    "IdentityError",
    "WspError",
]


class ErrorCode(IntEnum):
    """Process exit codes.

    - 0: Success
    - 1: User error (bad name, unknown repo, ambiguous input)
    - 2: Environment error (git missing, broken registry)
    - 3: Git error (a git command failed)
    - 4: Network error (fetch/clone from a remote failed)
    - 5: I/O error (filesystem failure)
    - 6: Safety block (removal refused to protect unrecovered work)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    GIT_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    SAFETY_BLOCK = 6

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK


# -----------------------------------------------------------------------------
# Identity
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InvalidIdentity:
    kind: ClassVar[str] = "invalid_identity"

    value: str
    reason: str

    @property
    def message(self) -> str:
        return f"invalid repository {self.value!r}: {self.reason}"


@dataclass(frozen=True, slots=True)
class PathTraversal:
    """A path segment tried to escape its directory. Never sanitized."""

    kind: ClassVar[str] = "path_traversal"

    value: str
    segment: str

    @property
    def message(self) -> str:
        return f"unsafe path component {self.segment!r} in {self.value!r}"


@dataclass(frozen=True, slots=True)
class AmbiguousIdentity:
    kind: ClassVar[str] = "ambiguous_identity"

    query: str
    matches: tuple[str, ...]

    @property
    def message(self) -> str:
        return f"repo {self.query!r} is ambiguous, matches: {', '.join(self.matches)}"


@dataclass(frozen=True, slots=True)
class NotFound:
    kind: ClassVar[str] = "not_found"

    what: Literal["repo", "workspace", "group", "member", "mirror"]
    name: str

    @property
    def message(self) -> str:
        return f"{self.what} {self.name!r} not found"


# -----------------------------------------------------------------------------
# Registry / workspace lifecycle
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AlreadyRegistered:
    kind: ClassVar[str] = "already_registered"

    identity: str

    @property
    def message(self) -> str:
        return f"repo {self.identity} already registered"


@dataclass(frozen=True, slots=True)
class AlreadyExists:
    kind: ClassVar[str] = "already_exists"

    what: Literal["workspace", "group", "mirror"]
    name: str

    @property
    def message(self) -> str:
        return f"{self.what} {self.name!r} already exists"


@dataclass(frozen=True, slots=True)
class InvalidName:
    kind: ClassVar[str] = "invalid_name"

    name: str
    reason: str

    @property
    def message(self) -> str:
        return f"invalid name {self.name!r}: {self.reason}"


@dataclass(frozen=True, slots=True)
class StorageError:
    """Registry or metadata file could not be read or written."""

    kind: ClassVar[str] = "storage_error"

    path: str
    detail: str

    @property
    def message(self) -> str:
        return f"{self.path}: {self.detail}"


# -----------------------------------------------------------------------------
# Git / network
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FetchFailed:
    """A network fetch failed. Recoverable: callers may continue on stale refs."""

    kind: ClassVar[str] = "fetch_failed"

    repo: str
    remote: str
    detail: str
    timed_out: bool = False

    @property
    def message(self) -> str:
        what = "timed out" if self.timed_out else "failed"
        return f"fetch {self.remote} {what} for {self.repo}: {self.detail}"


@dataclass(frozen=True, slots=True)
class GitFailed:
    kind: ClassVar[str] = "git_failed"

    repo: str
    operation: str
    detail: str
    returncode: int = 1

    @property
    def message(self) -> str:
        detail = f": {self.detail}" if self.detail else ""
        return f"git {self.operation} failed for {self.repo} (exit {self.returncode}){detail}"


# -----------------------------------------------------------------------------
# Removal safety
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DirtyWorkingTree:
    kind: ClassVar[str] = "dirty_working_tree"

    repo: str
    changed: int

    @property
    def message(self) -> str:
        return f"{self.repo} has {self.changed} changed file(s)"


@dataclass(frozen=True, slots=True)
class UnpushedCommits:
    kind: ClassVar[str] = "unpushed_commits"

    repo: str
    ahead: int

    @property
    def message(self) -> str:
        return f"{self.repo} has {self.ahead} unpushed commit(s)"


@dataclass(frozen=True, slots=True)
class UnsafeBranch:
    kind: ClassVar[str] = "unsafe_branch"

    repo: str
    branch: str
    verdict: BranchSafety
    stale: bool = False

    @property
    def message(self) -> str:
        msg = f"{self.repo} ({self.verdict.describe()})"
        if self.stale:
            msg += " (fetch failed, local data may be stale)"
        return msg


type RemovalProblem = DirtyWorkingTree | UnpushedCommits | UnsafeBranch


@dataclass(frozen=True, slots=True)
class RemovalBlocked:
    """Removal refused; nothing was deleted. Overridable with `force`."""

    kind: ClassVar[str] = "removal_blocked"

    workspace: str
    branch: str
    problems: tuple[RemovalProblem, ...]

    @property
    def message(self) -> str:
        lines = [f"cannot remove from workspace {self.workspace!r} (branch {self.branch}):"]
        lines.extend(f"  - {p.message}" for p in self.problems)
        if any(isinstance(p, UnsafeBranch) and p.stale for p in self.problems):
            lines.append("note: some fetches failed; a branch may already be merged remotely")
        return "\n".join(lines)

    @property
    def repos(self) -> tuple[str, ...]:
        return tuple(p.repo for p in self.problems)


@dataclass(frozen=True, slots=True)
class RepoFailure:
    repo: str
    detail: str


@dataclass(frozen=True, slots=True)
class PartialFailure:
    """A batch finished for every repository; some of them failed."""

    kind: ClassVar[str] = "partial_failure"

    operation: str
    failures: tuple[RepoFailure, ...]
    succeeded: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        lines = [f"{self.operation}: {len(self.failures)} repo(s) failed"]
        lines.extend(f"  - {f.repo}: {f.detail}" for f in self.failures)
        return "\n".join(lines)


type IdentityError = InvalidIdentity | PathTraversal

type WspError = (
    InvalidIdentity
    | PathTraversal
    | AmbiguousIdentity
    | NotFound
    | AlreadyRegistered
    | AlreadyExists
    | InvalidName
    | StorageError
    | FetchFailed
    | GitFailed
    | DirtyWorkingTree
    | UnpushedCommits
    | UnsafeBranch
    | RemovalBlocked
    | PartialFailure
)
