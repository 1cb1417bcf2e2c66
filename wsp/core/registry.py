"""Persistent registry of mirrored repositories and groups.

The registry is an explicit store object: loaded once at the start of an
invocation, passed to whatever needs it, and saved atomically at the end.
Nothing in wsp keeps it in a global.

File format (`<data_dir>/registry.json`):

    {
      "branch_prefix": "alice",
      "repos": {
        "github.com/acme/api": {"url": "git@github.com:acme/api.git",
                                "added": "2026-01-02T10:00:00+00:00"}
      },
      "groups": {
        "backend": {"repos": ["github.com/acme/api"]}
      }
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from wsp.platform.files import atomic_write_json

from .errors import StorageError
from .identity import RepositoryIdentity, from_identity
from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_str, get_str_list, get_table

__all__ = [
    "MirrorRecord",
    "Registry",
    "load_registry",
    "mirror_path",
    "save_registry",
]


@dataclass(frozen=True, slots=True)
class MirrorRecord:
    url: str
    added: datetime

    def to_dict(self) -> StrDict:
        return {"url": self.url, "added": self.added.isoformat()}


def mirror_path(mirrors_dir: Path, identity: RepositoryIdentity) -> Path:
    """Bare mirror location: `<mirrors_dir>/host/owner/name.git`."""
    return mirrors_dir.joinpath(*identity.mirror_relpath().parts)


def _empty_repos() -> dict[RepositoryIdentity, MirrorRecord]:
    return {}


def _empty_groups() -> dict[str, list[RepositoryIdentity]]:
    return {}


@dataclass
class Registry:
    """In-memory registry. Mutate, then `save_registry()`."""

    branch_prefix: str | None = None
    repos: dict[RepositoryIdentity, MirrorRecord] = field(default_factory=_empty_repos)
    groups: dict[str, list[RepositoryIdentity]] = field(default_factory=_empty_groups)

    def identities(self) -> list[RepositoryIdentity]:
        return sorted(self.repos)

    def groups_referencing(self, identity: RepositoryIdentity) -> list[str]:
        return sorted(name for name, members in self.groups.items() if identity in members)

    def to_dict(self) -> StrDict:
        data: StrDict = {}
        if self.branch_prefix:
            data["branch_prefix"] = self.branch_prefix
        data["repos"] = {str(i): self.repos[i].to_dict() for i in sorted(self.repos)}
        data["groups"] = {
            name: {"repos": [str(i) for i in self.groups[name]]} for name in sorted(self.groups)
        }
        return data


def _parse_added(raw: str | None) -> datetime:
    if raw:
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            pass
        else:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return datetime.fromtimestamp(0, tz=UTC)


def _from_dict(path: Path, data: StrDict) -> Result[Registry, StorageError]:
    registry = Registry(branch_prefix=get_str(data, "branch_prefix"))

    for key, value in get_table(data, "repos").items():
        match from_identity(key):
            case Err(e):
                return Err(StorageError(path=str(path), detail=e.message))
            case Ok(identity):
                entry = as_str_dict(value) or {}
                url = get_str(entry, "url")
                if url is None:
                    return Err(StorageError(path=str(path), detail=f"repo {key} has no url"))
                registry.repos[identity] = MirrorRecord(url=url, added=_parse_added(get_str(entry, "added")))

    for name, value in get_table(data, "groups").items():
        members: list[RepositoryIdentity] = []
        for raw in get_str_list(as_str_dict(value) or {}, "repos"):
            match from_identity(raw):
                case Err(e):
                    return Err(StorageError(path=str(path), detail=f"group {name}: {e.message}"))
                case Ok(identity):
                    if identity not in members:
                        members.append(identity)
        registry.groups[name] = members

    return Ok(registry)


def load_registry(path: Path) -> Result[Registry, StorageError]:
    """Load the registry; a missing file is an empty registry."""
    if not path.exists():
        return Ok(Registry())

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


def save_registry(path: Path, registry: Registry) -> Result[None, StorageError]:
    try:
        atomic_write_json(path, registry.to_dict())
    except OSError as e:
        return Err(StorageError(path=str(path), detail=f"cannot write: {e}"))
    return Ok(None)
