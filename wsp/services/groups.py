"""Named groups of repositories.

A group is an alias for an ordered list of registered repositories, used to
create workspaces (`wsp new feature -g backend`). Groups never own mirrors:
deleting a group leaves every mirror in place.
"""

from __future__ import annotations

from collections.abc import Sequence

from wsp.core.errors import AlreadyExists, InvalidName, NotFound
from wsp.core.identity import RepositoryIdentity
from wsp.core.registry import Registry
from wsp.core.result import Err, Ok, Result
from wsp.core.workspace import validate_name

__all__ = ["GroupService"]


class GroupService:
    def __init__(self, *, registry: Registry) -> None:
        self._registry = registry

    def create(
        self,
        name: str,
        members: Sequence[RepositoryIdentity],
    ) -> Result[list[RepositoryIdentity], InvalidName | AlreadyExists | NotFound]:
        checked = validate_name(name)
        if isinstance(checked, Err):
            return checked
        if name in self._registry.groups:
            return Err(AlreadyExists(what="group", name=name))
        unknown = self._first_unregistered(members)
        if unknown is not None:
            return Err(unknown)

        ordered = _dedupe(members)
        self._registry.groups[name] = ordered
        return Ok(ordered)

    def get(self, name: str) -> Result[list[RepositoryIdentity], NotFound]:
        members = self._registry.groups.get(name)
        if members is None:
            return Err(NotFound(what="group", name=name))
        return Ok(list(members))

    def names(self) -> list[str]:
        return sorted(self._registry.groups)

    def update(
        self,
        name: str,
        *,
        add: Sequence[RepositoryIdentity] = (),
        remove: Sequence[RepositoryIdentity] = (),
    ) -> Result[list[RepositoryIdentity], NotFound]:
        """Append `add` (keeping order, skipping duplicates), then drop `remove`."""
        current = self._registry.groups.get(name)
        if current is None:
            return Err(NotFound(what="group", name=name))
        unknown = self._first_unregistered(add)
        if unknown is not None:
            return Err(unknown)

        updated = [i for i in _dedupe([*current, *add]) if i not in set(remove)]
        self._registry.groups[name] = updated
        return Ok(updated)

    def delete(self, name: str) -> Result[None, NotFound]:
        if name not in self._registry.groups:
            return Err(NotFound(what="group", name=name))
        del self._registry.groups[name]
        return Ok(None)

    def _first_unregistered(self, members: Sequence[RepositoryIdentity]) -> NotFound | None:
        for identity in members:
            if identity not in self._registry.repos:
                return NotFound(what="repo", name=str(identity))
        return None


def _dedupe(members: Sequence[RepositoryIdentity]) -> list[RepositoryIdentity]:
    seen: set[RepositoryIdentity] = set()
    ordered: list[RepositoryIdentity] = []
    for identity in members:
        if identity not in seen:
            seen.add(identity)
            ordered.append(identity)
    return ordered
