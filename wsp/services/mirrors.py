"""Mirror registry service.

Each registered repository has exactly one bare mirror under
`<data_dir>/mirrors/<host>/<owner>/<name>.git`. The mirror is the only place
wsp fetches from the network on behalf of new workspaces; clones are created
from it locally.

Mirrors keep upstream branches under `refs/remotes/origin/*`
(`+refs/heads/*:refs/remotes/origin/*`), so a fetch with `--prune` mirrors
branch deletions without touching anything else in the mirror.

The service mutates the `Registry` it was given; the caller persists it with
`save_registry()` once the whole command succeeded.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from wsp.core.config import Paths
from wsp.core.errors import (
    AlreadyExists,
    AlreadyRegistered,
    AmbiguousIdentity,
    FetchFailed,
    GitFailed,
    IdentityError,
    NotFound,
    StorageError,
)
from wsp.core.identity import RepositoryIdentity, parse, resolve, shortnames
from wsp.core.registry import MirrorRecord, Registry, mirror_path
from wsp.core.result import Err, Ok, Result
from wsp.git.multi import FetchOutcome, fetch_all
from wsp.git.repository import Repository
from wsp.git.runner import GitRunner, SubprocessGit
from wsp.output.console import ConsoleProtocol
from wsp.platform.files import remove_tree

__all__ = [
    "MIRROR_REFSPEC",
    "MirrorInfo",
    "MirrorService",
    "RegisterError",
]

MIRROR_REFSPEC = "+refs/heads/*:refs/remotes/origin/*"

type RegisterError = IdentityError | AlreadyRegistered | AlreadyExists | FetchFailed | GitFailed


@dataclass(frozen=True, slots=True)
class MirrorInfo:
    identity: RepositoryIdentity
    shortname: str
    url: str
    added: datetime
    path: Path


class MirrorService:
    """Register, fetch and remove bare mirrors."""

    def __init__(
        self,
        *,
        registry: Registry,
        paths: Paths,
        console: ConsoleProtocol,
        runner: GitRunner | None = None,
    ) -> None:
        self._registry = registry
        self._paths = paths
        self._console = console
        self._git: GitRunner = runner or SubprocessGit()

    def mirror_dir(self, identity: RepositoryIdentity) -> Path:
        return mirror_path(self._paths.mirrors_dir, identity)

    def mirror(self, identity: RepositoryIdentity) -> Repository:
        return Repository(self.mirror_dir(identity), label=str(identity), runner=self._git)

    def resolve(self, query: str) -> Result[RepositoryIdentity, AmbiguousIdentity | NotFound]:
        return resolve(query, self._registry.repos)

    # -------------------------------------------------------------------------
    # Register
    # -------------------------------------------------------------------------

    def register(self, url: str) -> Result[RepositoryIdentity, RegisterError]:
        """Bare-clone `url` and add it to the registry.

        A repository that is already registered is rejected before anything
        on disk is touched. A failed clone leaves no directory behind.
        """
        parsed = parse(url)
        if isinstance(parsed, Err):
            return parsed
        identity = parsed.value

        if identity in self._registry.repos:
            return Err(AlreadyRegistered(identity=str(identity)))

        dest = self.mirror_dir(identity)
        if dest.exists():
            return Err(AlreadyExists(what="mirror", name=str(identity)))

        self._console.info(f"cloning {url}")
        created = self._create_mirror(url.strip(), dest, identity)
        if isinstance(created, Err):
            try:
                remove_tree(dest)
            except OSError as e:
                self._console.warning(f"could not clean up {dest}: {e}")
            return created

        self._registry.repos[identity] = MirrorRecord(url=url.strip(), added=datetime.now(UTC))
        return Ok(identity)

    def _create_mirror(
        self,
        url: str,
        dest: Path,
        identity: RepositoryIdentity,
    ) -> Result[None, FetchFailed | GitFailed]:
        cloned = Repository.clone_bare(
            url,
            dest,
            label=str(identity),
            runner=self._git,
            timeout=self._paths.fetch_timeout,
        )
        if isinstance(cloned, Err):
            return cloned
        repo = cloned.value

        configured = repo.set_config("remote.origin.fetch", MIRROR_REFSPEC)
        if isinstance(configured, Err):
            return configured

        fetched = repo.fetch("origin", timeout=self._paths.fetch_timeout)
        if isinstance(fetched, Err):
            return fetched

        default = repo.default_branch("origin")
        if default and repo.ref_exists(f"refs/remotes/origin/{default}"):
            linked = repo.set_symbolic_ref("refs/remotes/origin/HEAD", f"refs/remotes/origin/{default}")
            if isinstance(linked, Err):
                return linked
        return Ok(None)

    # -------------------------------------------------------------------------
    # Fetch
    # -------------------------------------------------------------------------

    def _prepare(self, identity: RepositoryIdentity) -> Repository:
        repo = self.mirror(identity)
        if repo.get_config("remote.origin.fetch") is None:
            repo.set_config("remote.origin.fetch", MIRROR_REFSPEC)
        return repo

    def fetch(self, identity: RepositoryIdentity, *, prune: bool = False) -> Result[None, FetchFailed | NotFound]:
        """Fetch one mirror. A FetchFailed leaves the mirror's refs as they were."""
        if identity not in self._registry.repos:
            return Err(NotFound(what="repo", name=str(identity)))
        repo = self._prepare(identity)
        if not repo.exists():
            return Err(NotFound(what="mirror", name=str(identity)))
        return repo.fetch("origin", prune=prune, timeout=self._paths.fetch_timeout)

    def fetch_all(
        self,
        identities: Sequence[RepositoryIdentity] | None = None,
        *,
        prune: bool = False,
    ) -> list[FetchOutcome]:
        """Fetch several mirrors concurrently (all registered ones by default)."""
        targets = list(identities) if identities is not None else self._registry.identities()
        repos: list[Repository] = []
        missing: list[FetchOutcome] = []
        for identity in targets:
            repo = self._prepare(identity)
            if repo.exists():
                repos.append(repo)
            else:
                missing.append(
                    FetchOutcome(
                        repo=str(identity),
                        error=FetchFailed(repo=str(identity), remote="origin", detail="mirror directory missing"),
                    )
                )

        outcomes = fetch_all(
            repos,
            "origin",
            prune=prune,
            timeout=self._paths.fetch_timeout,
            max_workers=self._paths.fetch_jobs,
        )
        by_repo = {o.repo: o for o in [*outcomes, *missing]}
        return [by_repo[str(i)] for i in targets]

    # -------------------------------------------------------------------------
    # Remove / list
    # -------------------------------------------------------------------------

    def remove(self, identity: RepositoryIdentity) -> Result[list[str], NotFound | StorageError]:
        """Delete the mirror and its record.

        Groups that reference the repository do not block removal: the
        identity is dropped from them and a warning names each group.
        Returns the names of the groups that were changed.
        """
        if identity not in self._registry.repos:
            return Err(NotFound(what="repo", name=str(identity)))

        dest = self.mirror_dir(identity)
        try:
            remove_tree(dest)
        except OSError as e:
            return Err(StorageError(path=str(dest), detail=f"cannot remove mirror: {e}"))

        del self._registry.repos[identity]

        groups = self._registry.groups_referencing(identity)
        for name in groups:
            self._registry.groups[name].remove(identity)
            self._console.warning(f"removed {identity} from group {name!r}")
        return Ok(groups)

    def list(self) -> list[MirrorInfo]:
        identities = self._registry.identities()
        names = shortnames(identities)
        return [
            MirrorInfo(
                identity=identity,
                shortname=names[identity],
                url=self._registry.repos[identity].url,
                added=self._registry.repos[identity].added,
                path=self.mirror_dir(identity),
            )
            for identity in identities
        ]
