"""Error presentation utilities.

Centralized error formatting, JSON rendering and exit code mapping for
consistent UX across commands.
"""

from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from enum import Enum
from typing import TYPE_CHECKING

from wsp.core.errors import (
    AlreadyExists,
    AlreadyRegistered,
    AmbiguousIdentity,
    DirtyWorkingTree,
    ErrorCode,
    FetchFailed,
    GitFailed,
    InvalidIdentity,
    InvalidName,
    NotFound,
    PartialFailure,
    PathTraversal,
    RemovalBlocked,
    StorageError,
    UnpushedCommits,
    UnsafeBranch,
    WspError,
)
from wsp.core.structured import StrDict
from wsp.output.console import Style

if TYPE_CHECKING:
    from wsp.output.console import ConsoleProtocol

__all__ = [
    "dump_json",
    "error_exit_code",
    "error_to_dict",
    "print_error",
    "to_jsonable",
]


def to_jsonable(value: object) -> object:
    """Convert dataclasses, enums, tuples and paths into plain JSON values."""
    if isinstance(value, Enum):
        return str(value.value)
    if is_dataclass(value) and not isinstance(value, type):
        data: StrDict = {}
        kind = getattr(value, "kind", None)
        if isinstance(kind, str):
            data["kind"] = kind
        for f in fields(value):
            data[f.name] = to_jsonable(getattr(value, f.name))
        return data
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}  # pyright: ignore[reportUnknownVariableType]
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]  # pyright: ignore[reportUnknownVariableType]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def error_to_dict(error: WspError) -> StrDict:
    """`{"kind": ..., <fields>..., "message": ...}` for any error kind."""
    rendered = to_jsonable(error)
    data: StrDict = rendered if isinstance(rendered, dict) else {"kind": "unknown"}  # pyright: ignore[reportUnknownVariableType]
    data["message"] = error.message
    return data


def dump_json(payload: object) -> str:
    return json.dumps(to_jsonable(payload), indent=2, sort_keys=False)


def error_exit_code(error: WspError) -> int:
    """Get exit code for an error."""
    match error:
        case (
            InvalidIdentity()
            | PathTraversal()
            | AmbiguousIdentity()
            | NotFound()
            | AlreadyRegistered()
            | AlreadyExists()
            | InvalidName()
        ):
            return int(ErrorCode.USER_ERROR)
        case StorageError():
            return int(ErrorCode.ENV_ERROR)
        case GitFailed():
            return int(ErrorCode.GIT_ERROR)
        case FetchFailed():
            return int(ErrorCode.NETWORK_ERROR)
        case RemovalBlocked() | DirtyWorkingTree() | UnpushedCommits() | UnsafeBranch():
            return int(ErrorCode.SAFETY_BLOCK)
        case PartialFailure():
            return int(ErrorCode.IO_ERROR)


def print_error(error: WspError, console: ConsoleProtocol) -> None:
    """Print error to console with appropriate formatting."""
    match error:
        case AmbiguousIdentity(query=query, matches=matches):
            console.error(f"repo {query!r} is ambiguous")
            for m in matches:
                console.print(f"  {m}", Style.DIM)
            console.print("hint: use a longer suffix, e.g. owner/name", Style.DIM)
        case RemovalBlocked(problems=problems):
            console.error(f"cannot remove from workspace {error.workspace!r} (branch {error.branch})")
            for p in problems:
                console.print(f"  - {p.message}", Style.WARNING)
            if any(isinstance(p, UnsafeBranch) and p.stale for p in problems):
                console.print("note: some fetches failed; a branch may already be merged remotely", Style.DIM)
            console.print("hint: push or merge your work, or pass --force to delete anyway", Style.DIM)
        case PartialFailure(failures=failures, succeeded=succeeded):
            console.error(f"{error.operation}: {len(failures)} repo(s) failed")
            for f in failures:
                console.print(f"  - {f.repo}: {f.detail}", Style.WARNING)
            if succeeded:
                console.print(f"succeeded: {', '.join(succeeded)}", Style.DIM)
        case AlreadyRegistered():
            console.error(error.message)
            console.print("hint: `wsp repo fetch` refreshes an existing mirror", Style.DIM)
        case StorageError():
            console.error(error.message)
            console.print("hint: fix or remove the file, or set WSP_DATA_DIR", Style.DIM)
        case _:
            console.error(error.message)
