"""Workspace metadata.

A workspace is a directory `<workspaces_dir>/<name>` holding one clone per
member repository and a `.wsp.json` sidecar:

    {
      "name": "fix-login",
      "branch": "alice/fix-login",
      "created": "2026-01-02T10:00:00+00:00",
      "repos": {
        "github.com/acme/api": {},
        "github.com/acme/lib": {"ref": "v1.0"}
      },
      "dirs": {}
    }

An empty entry is an Active member (on the workspace branch); an entry with a
`ref` is a Context member pinned to that ref. `dirs` records clone directory
names that differ from the repository name because of a name collision.
"""

from __future__ import annotations

import json
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from wsp.platform.files import atomic_write_json

from .config import METADATA_FILE
from .errors import InvalidName, NotFound, StorageError
from .identity import RepositoryIdentity, from_identity
from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_str, get_table

__all__ = [
    "Active",
    "Context",
    "Workspace",
    "WorkspaceMember",
    "WorkspaceMetadata",
    "compute_dir_names",
    "detect",
    "list_names",
    "load_metadata",
    "member_from_ref",
    "save_metadata",
    "validate_name",
]


@dataclass(frozen=True, slots=True)
class Active:
    """Checked out on the workspace branch. Subject to safety checks."""


@dataclass(frozen=True, slots=True)
class Context:
    """Pinned to a branch, tag or commit. Never branched, never classified."""

    ref: str


type WorkspaceMember = Active | Context


def member_from_ref(ref: str | None) -> WorkspaceMember:
    return Context(ref) if ref else Active()


def _empty_members() -> dict[RepositoryIdentity, WorkspaceMember]:
    return {}


def _empty_dirs() -> dict[RepositoryIdentity, str]:
    return {}


@dataclass
class WorkspaceMetadata:
    name: str
    branch: str
    created: datetime
    members: dict[RepositoryIdentity, WorkspaceMember] = field(default_factory=_empty_members)
    dirs: dict[RepositoryIdentity, str] = field(default_factory=_empty_dirs)

    def dir_name(self, identity: RepositoryIdentity) -> str:
        """Clone directory name: the override if any, else the repository name."""
        return self.dirs.get(identity, identity.name)

    def active(self) -> list[RepositoryIdentity]:
        return [i for i in sorted(self.members) if isinstance(self.members[i], Active)]

    def to_dict(self) -> StrDict:
        repos: StrDict = {}
        for identity in sorted(self.members):
            match self.members[identity]:
                case Active():
                    repos[str(identity)] = {}
                case Context(ref=ref):
                    repos[str(identity)] = {"ref": ref}
        return {
            "name": self.name,
            "branch": self.branch,
            "created": self.created.isoformat(),
            "repos": repos,
            "dirs": {str(i): self.dirs[i] for i in sorted(self.dirs)},
        }


def compute_dir_names(identities: list[RepositoryIdentity]) -> dict[RepositoryIdentity, str]:
    """Directory overrides for identities sharing a repository name.

    Every identity in a colliding set gets `owner-name`, or
    `host-owner-name` when the same owner and name exist on several hosts.
    Identities with a unique name are absent from the result.
    """
    by_name: defaultdict[str, list[RepositoryIdentity]] = defaultdict(list)
    for identity in identities:
        by_name[identity.name].append(identity)

    dirs: dict[RepositoryIdentity, str] = {}
    for group in by_name.values():
        if len(group) > 1:
            owners = Counter(i.qualified_dir_name for i in group)
            for identity in group:
                short = identity.qualified_dir_name
                dirs[identity] = short if owners[short] == 1 else identity.host_qualified_dir_name
    return dirs


def validate_name(name: str) -> Result[str, InvalidName]:
    """Reject names that are unsafe as a single directory component."""
    if not name:
        return Err(InvalidName(name=name, reason="cannot be empty"))
    if "\0" in name:
        return Err(InvalidName(name=name, reason="cannot contain null bytes"))
    if "/" in name or "\\" in name:
        return Err(InvalidName(name=name, reason="cannot contain path separators"))
    if name.startswith("-"):
        return Err(InvalidName(name=name, reason="cannot start with a dash"))
    if name.startswith("."):
        return Err(InvalidName(name=name, reason="cannot start with a dot"))
    return Ok(name)


def _parse_created(raw: str | None) -> datetime:
    if raw:
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            pass
        else:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return datetime.fromtimestamp(0, tz=UTC)


def _from_dict(path: Path, data: StrDict) -> Result[WorkspaceMetadata, StorageError]:
    name = get_str(data, "name")
    branch = get_str(data, "branch")
    if name is None or branch is None:
        return Err(StorageError(path=str(path), detail="missing name or branch"))

    meta = WorkspaceMetadata(name=name, branch=branch, created=_parse_created(get_str(data, "created")))

    for key, value in get_table(data, "repos").items():
        match from_identity(key):
            case Err(e):
                return Err(StorageError(path=str(path), detail=e.message))
            case Ok(identity):
                entry = as_str_dict(value) or {}
                meta.members[identity] = member_from_ref(get_str(entry, "ref"))

    for key, value in get_table(data, "dirs").items():
        match from_identity(key):
            case Err(e):
                return Err(StorageError(path=str(path), detail=e.message))
            case Ok(identity):
                if not isinstance(value, str) or validate_name(value).is_err():
                    return Err(StorageError(path=str(path), detail=f"invalid directory for {key}"))
                if identity in meta.members:
                    meta.dirs[identity] = value

    return Ok(meta)


def load_metadata(ws_dir: Path) -> Result[WorkspaceMetadata, StorageError | NotFound]:
    path = ws_dir / METADATA_FILE
    if not path.is_file():
        return Err(NotFound(what="workspace", name=ws_dir.name))

    try:
        data_obj: object = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        return Err(StorageError(path=str(path), detail=f"cannot read: {e}"))
    except json.JSONDecodeError as e:
        return Err(StorageError(path=str(path), detail=f"invalid JSON: {e}"))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(StorageError(path=str(path), detail="root must be a JSON object"))
    return _from_dict(path, data)


def save_metadata(ws_dir: Path, meta: WorkspaceMetadata) -> Result[None, StorageError]:
    path = ws_dir / METADATA_FILE
    try:
        atomic_write_json(path, meta.to_dict())
    except OSError as e:
        return Err(StorageError(path=str(path), detail=f"cannot write: {e}"))
    return Ok(None)


def detect(start_dir: Path) -> Result[Path, NotFound]:
    """Find the workspace containing `start_dir` by walking up to the metadata file."""
    for parent in (start_dir, *start_dir.parents):
        if (parent / METADATA_FILE).is_file():
            return Ok(parent)
    return Err(NotFound(what="workspace", name=str(start_dir)))


def list_names(workspaces_dir: Path) -> list[str]:
    if not workspaces_dir.is_dir():
        return []
    return sorted(
        child.name
        for child in workspaces_dir.iterdir()
        if child.is_dir() and (child / METADATA_FILE).is_file()
    )


@dataclass(frozen=True, slots=True)
class Workspace:
    """A loaded workspace: its directory plus metadata."""

    root: Path
    meta: WorkspaceMetadata

    @property
    def name(self) -> str:
        return self.meta.name

    @property
    def branch(self) -> str:
        return self.meta.branch

    def clone_dir(self, identity: RepositoryIdentity) -> Path:
        return self.root / self.meta.dir_name(identity)
