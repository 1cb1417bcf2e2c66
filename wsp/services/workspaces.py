"""Workspace materialization.

Creating a workspace never touches the network until the very end: every
member is cloned from its local mirror (`git clone --local`, objects are
hardlinked) and checked out. Each clone gets two remotes:

- `wsp-mirror`: the local mirror, fetching the mirror's
  `refs/remotes/origin/*` into `refs/remotes/wsp-mirror/*`;
- `origin`: the real upstream URL, for push/pull.

Active members get the workspace branch, started from
`wsp-mirror/<default>`. Context members are checked out at their pinned ref:
a mirror branch becomes a local branch, anything else (tag, commit) is a
detached checkout.

Once all members exist, `origin` is fetched once per clone (in parallel) so
that remote-tracking refs needed later by the safety checks are present.
Those fetches are best effort: failures are warnings.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from wsp.core.config import Paths
from wsp.core.errors import (
    AlreadyExists,
    FetchFailed,
    GitFailed,
    InvalidName,
    NotFound,
    PartialFailure,
    RemovalBlocked,
    RepoFailure,
    StorageError,
)
from wsp.core.identity import RepositoryIdentity
from wsp.core.registry import Registry, mirror_path
from wsp.core.result import Err, Ok, Result
from wsp.core.workspace import (
    Active,
    Context,
    Workspace,
    WorkspaceMember,
    WorkspaceMetadata,
    compute_dir_names,
    list_names,
    load_metadata,
    save_metadata,
    validate_name,
)
from wsp.git.multi import FetchOutcome, fetch_all
from wsp.git.repository import Repository
from wsp.git.runner import GitRunner, SubprocessGit
from wsp.output.console import ConsoleProtocol
from wsp.platform.files import remove_tree

from .removal import RemovalService

__all__ = [
    "MIRROR_REMOTE",
    "MemberStatus",
    "WorkspaceService",
    "branch_name",
]

MIRROR_REMOTE = "wsp-mirror"
_CLONE_REFSPEC = f"+refs/remotes/origin/*:refs/remotes/{MIRROR_REMOTE}/*"
# the mirror's symbolic origin/HEAD must not overwrite the clone's own
_CLONE_HEAD_EXCLUDE = "^refs/remotes/origin/HEAD"

type MaterializeError = NotFound | GitFailed | FetchFailed


def branch_name(name: str, prefix: str | None) -> str:
    """`prefix/name` when a non-empty prefix is configured, else `name`."""
    prefix = (prefix or "").strip().strip("/")
    return f"{prefix}/{name}" if prefix else name


@dataclass(frozen=True, slots=True)
class MemberStatus:
    """One clone's state, as shown by `wsp status`.

    Attributes:
        identity: Member repository
        directory: Clone directory name
        member: Active or Context(ref)
        branch: Checked out branch (None when detached)
        head: Short commit id
        ahead: Commits ahead of the tracked upstream
        behind: Commits behind the tracked upstream
        changed: Files with uncommitted changes (including untracked)
        error: Why the clone could not be inspected
    """

    identity: RepositoryIdentity
    directory: str
    member: WorkspaceMember
    branch: str | None = None
    head: str | None = None
    ahead: int = 0
    behind: int = 0
    changed: int = 0
    error: str | None = None

    @property
    def is_clean(self) -> bool:
        return self.error is None and self.changed == 0 and self.ahead == 0


class WorkspaceService:
    """Create, extend, shrink and inspect workspaces."""

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

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def names(self) -> list[str]:
        return list_names(self._paths.workspaces_dir)

    def load(self, name: str) -> Result[Workspace, InvalidName | NotFound | StorageError]:
        checked = validate_name(name)
        if isinstance(checked, Err):
            return checked
        return self.load_dir(self._paths.workspace_dir(name))

    def load_dir(self, ws_dir: Path) -> Result[Workspace, NotFound | StorageError]:
        loaded = load_metadata(ws_dir)
        if isinstance(loaded, Err):
            return loaded
        return Ok(Workspace(root=ws_dir, meta=loaded.value))

    def repository(self, ws: Workspace, identity: RepositoryIdentity) -> Repository:
        return Repository(ws.clone_dir(identity), label=str(identity), runner=self._git)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create(
        self,
        name: str,
        members: Sequence[tuple[RepositoryIdentity, WorkspaceMember]],
    ) -> Result[Workspace, InvalidName | AlreadyExists | NotFound | GitFailed | FetchFailed | StorageError]:
        """Create workspace `name` with one clone per member.

        Any failure removes the workspace directory again: a workspace either
        exists completely or not at all.
        """
        checked = validate_name(name)
        if isinstance(checked, Err):
            return checked

        ws_dir = self._paths.workspace_dir(name)
        if ws_dir.exists():
            return Err(AlreadyExists(what="workspace", name=name))

        wanted = dict(members)
        for identity in wanted:
            if identity not in self._registry.repos:
                return Err(NotFound(what="repo", name=str(identity)))

        meta = WorkspaceMetadata(
            name=name,
            branch=branch_name(name, self._registry.branch_prefix),
            created=datetime.now(UTC),
            members=wanted,
            dirs=compute_dir_names(list(wanted)),
        )
        ws = Workspace(root=ws_dir, meta=meta)

        try:
            ws_dir.mkdir(parents=True)
        except OSError as e:
            return Err(StorageError(path=str(ws_dir), detail=f"cannot create: {e}"))

        result = self._materialize_all(ws, sorted(wanted))
        if isinstance(result, Ok):
            result = save_metadata(ws_dir, meta)

        if isinstance(result, Err):
            try:
                remove_tree(ws_dir)
            except OSError as e:
                self._console.warning(f"could not clean up {ws_dir}: {e}")
            return result
        return Ok(ws)

    def _materialize_all(
        self,
        ws: Workspace,
        identities: Sequence[RepositoryIdentity],
    ) -> Result[None, MaterializeError]:
        for identity in identities:
            self._console.info(f"cloning {identity} into {ws.meta.dir_name(identity)}")
            created = self._materialize(ws, identity)
            if isinstance(created, Err):
                return created
        self._connect_upstream(ws, identities)
        return Ok(None)

    def _materialize(self, ws: Workspace, identity: RepositoryIdentity) -> Result[Repository, MaterializeError]:
        source = mirror_path(self._paths.mirrors_dir, identity)
        if not (source / "HEAD").is_file():
            return Err(NotFound(what="mirror", name=str(identity)))

        cloned = Repository.clone_local(
            source,
            ws.clone_dir(identity),
            origin=MIRROR_REMOTE,
            label=str(identity),
            runner=self._git,
            timeout=self._paths.fetch_timeout,
        )
        if isinstance(cloned, Err):
            return cloned
        repo = cloned.value

        steps = (
            lambda: repo.set_config(f"remote.{MIRROR_REMOTE}.fetch", _CLONE_REFSPEC),
            lambda: repo.add_config(f"remote.{MIRROR_REMOTE}.fetch", _CLONE_HEAD_EXCLUDE),
            lambda: repo.fetch(MIRROR_REMOTE, timeout=self._paths.fetch_timeout),
            lambda: repo.set_remote("origin", self._registry.repos[identity].url),
        )
        for step in steps:
            done = step()
            if isinstance(done, Err):
                return done

        match ws.meta.members[identity]:
            case Context(ref=ref):
                checked_out = self._checkout_context(repo, ref)
            case Active():
                checked_out = self._checkout_active(repo, ws.branch)
        if isinstance(checked_out, Err):
            return checked_out
        return Ok(repo)

    def _checkout_context(self, repo: Repository, ref: str) -> Result[None, GitFailed]:
        timeout = self._paths.fetch_timeout
        if repo.ref_exists(f"refs/remotes/{MIRROR_REMOTE}/{ref}"):
            return repo.checkout_new_branch(ref, f"{MIRROR_REMOTE}/{ref}", reset=True, timeout=timeout)
        if repo.branch_exists(ref):
            return repo.checkout(ref, timeout=timeout)
        return repo.checkout_detached(ref, timeout=timeout)

    def _checkout_active(self, repo: Repository, branch: str) -> Result[None, GitFailed]:
        timeout = self._paths.fetch_timeout
        if repo.branch_exists(branch):
            return repo.checkout(branch, timeout=timeout)
        default = repo.default_branch(MIRROR_REMOTE)
        if default is None:
            return Err(GitFailed(repo=repo.label, operation="symbolic-ref", detail="cannot detect default branch"))
        return repo.checkout_new_branch(branch, f"{MIRROR_REMOTE}/{default}", timeout=timeout)

    def _connect_upstream(self, ws: Workspace, identities: Sequence[RepositoryIdentity]) -> list[FetchOutcome]:
        """Fetch `origin` in each new clone, then point branches at it."""
        repos = [self.repository(ws, i) for i in identities]
        outcomes = fetch_all(
            repos,
            "origin",
            timeout=self._paths.fetch_timeout,
            max_workers=self._paths.fetch_jobs,
        )
        for identity, repo, outcome in zip(identities, repos, outcomes, strict=True):
            if outcome.error is not None:
                self._console.warning(f"{outcome.error.message} (remote-tracking refs not seeded)")
                continue
            default = repo.default_branch(MIRROR_REMOTE)
            if default is None or not repo.ref_exists(f"refs/remotes/origin/{default}"):
                continue
            head = repo.set_remote_head("origin", default)
            if isinstance(head, Err):
                self._console.warning(head.error.message)

            match ws.meta.members[identity]:
                case Active():
                    tracked = f"origin/{default}"
                case Context(ref=ref):
                    if repo.current_branch() != ref or not repo.ref_exists(f"refs/remotes/origin/{ref}"):
                        continue
                    tracked = f"origin/{ref}"
            upstream = repo.set_upstream(tracked)
            if isinstance(upstream, Err):
                self._console.warning(upstream.error.message)
        return outcomes

    # -------------------------------------------------------------------------
    # Add / remove members
    # -------------------------------------------------------------------------

    def add_members(
        self,
        name: str,
        members: Sequence[tuple[RepositoryIdentity, WorkspaceMember]],
    ) -> Result[list[RepositoryIdentity], InvalidName | NotFound | GitFailed | FetchFailed | StorageError]:
        """Clone additional members into an existing workspace.

        Members already present are skipped with a warning. When a new member
        shares its repository name with an existing clone, that clone is
        renamed as `compute_dir_names` dictates and the new one gets a
        qualified name as well.
        """
        loaded = self.load(name)
        if isinstance(loaded, Err):
            return loaded
        ws = loaded.value

        for identity, _ in members:
            if identity not in self._registry.repos:
                return Err(NotFound(what="repo", name=str(identity)))

        added: list[RepositoryIdentity] = []
        failure: MaterializeError | StorageError | None = None
        for identity, member in members:
            if identity in ws.meta.members:
                self._console.warning(f"{identity} already in workspace, skipping")
                continue

            renamed = self._make_room(ws, identity)
            if isinstance(renamed, Err):
                failure = renamed.error
                break

            ws.meta.members[identity] = member
            self._console.info(f"cloning {identity} into {ws.meta.dir_name(identity)}")
            created = self._materialize(ws, identity)
            if isinstance(created, Err):
                failure = created.error
                del ws.meta.members[identity]
                ws.meta.dirs.pop(identity, None)
                try:
                    remove_tree(ws.clone_dir(identity))
                except OSError as e:
                    self._console.warning(f"could not clean up {ws.clone_dir(identity)}: {e}")
                break
            added.append(identity)

        if added:
            self._connect_upstream(ws, added)

        saved = save_metadata(ws.root, ws.meta)
        if isinstance(saved, Err):
            return saved
        if failure is not None:
            return Err(failure)
        return Ok(added)

    def _make_room(self, ws: Workspace, identity: RepositoryIdentity) -> Result[None, StorageError]:
        """Rename existing clones so that `identity` gets a directory of its own."""
        wanted = compute_dir_names([*ws.meta.members, identity])
        failures = self._rename_clones(ws, wanted)
        if failures:
            return Err(StorageError(path=str(ws.root), detail=failures[0].detail))
        if identity in wanted:
            ws.meta.dirs[identity] = wanted[identity]
        return Ok(None)

    def remove_members(
        self,
        name: str,
        identities: Sequence[RepositoryIdentity],
        *,
        force: bool = False,
    ) -> Result[list[RepositoryIdentity], InvalidName | NotFound | StorageError | RemovalBlocked | PartialFailure]:
        """Remove members from a workspace, deleting their clones.

        The same safety rules as deleting the whole workspace apply to the
        selected Active members. Clones that were renamed because of a name
        collision get their short name back once the collision is gone.
        """
        loaded = self.load(name)
        if isinstance(loaded, Err):
            return loaded
        ws = loaded.value

        for identity in identities:
            if identity not in ws.meta.members:
                return Err(NotFound(what="member", name=str(identity)))

        removal = RemovalService(paths=self._paths, console=self._console, runner=self._git)
        if not force:
            checked = removal.check(ws, identities)
            if isinstance(checked, Err):
                return checked

        removed, failures = removal.delete_clones(ws, identities)
        for identity in removed:
            del ws.meta.members[identity]
            ws.meta.dirs.pop(identity, None)

        failures.extend(self._restore_dir_names(ws))

        saved = save_metadata(ws.root, ws.meta)
        if isinstance(saved, Err):
            return saved
        if failures:
            return Err(
                PartialFailure(
                    operation=f"remove from {name}",
                    failures=tuple(failures),
                    succeeded=tuple(str(i) for i in removed),
                )
            )
        return Ok(removed)

    def _restore_dir_names(self, ws: Workspace) -> list[RepoFailure]:
        """Rename clones to whatever the remaining members require."""
        return self._rename_clones(ws, compute_dir_names(list(ws.meta.members)))

    def _rename_clones(self, ws: Workspace, wanted: dict[RepositoryIdentity, str]) -> list[RepoFailure]:
        failures: list[RepoFailure] = []
        for identity in sorted(ws.meta.members):
            current = ws.meta.dir_name(identity)
            target = wanted.get(identity, identity.name)
            if current == target:
                continue
            if (ws.root / target).exists():
                failures.append(RepoFailure(repo=str(identity), detail=f"cannot rename {current}: {target} exists"))
                continue
            try:
                (ws.root / current).rename(ws.root / target)
            except OSError as e:
                failures.append(RepoFailure(repo=str(identity), detail=f"cannot rename {current} to {target}: {e}"))
                continue
            if identity in wanted:
                ws.meta.dirs[identity] = target
            else:
                ws.meta.dirs.pop(identity, None)
        return failures

    # -------------------------------------------------------------------------
    # Inspect / refresh
    # -------------------------------------------------------------------------

    def status(self, ws: Workspace) -> list[MemberStatus]:
        statuses: list[MemberStatus] = []
        for identity in sorted(ws.meta.members):
            member = ws.meta.members[identity]
            directory = ws.meta.dir_name(identity)
            repo = self.repository(ws, identity)
            if not repo.exists():
                statuses.append(MemberStatus(identity, directory, member, error="clone missing"))
                continue
            match repo.status():
                case Err(e):
                    statuses.append(MemberStatus(identity, directory, member, error=e.message))
                case Ok(st):
                    statuses.append(
                        MemberStatus(
                            identity=identity,
                            directory=directory,
                            member=member,
                            branch=None if st.is_detached else st.branch,
                            head=repo.head_commit(),
                            ahead=st.ahead,
                            behind=st.behind,
                            changed=st.changed_count,
                        )
                    )
        return statuses

    def propagate(self, ws: Workspace) -> list[FetchOutcome]:
        """Fetch `wsp-mirror` into every clone so they see freshly fetched mirror refs."""
        identities = sorted(ws.meta.members)
        repos = [self.repository(ws, i) for i in identities if ws.clone_dir(i).is_dir()]
        outcomes = fetch_all(
            repos,
            MIRROR_REMOTE,
            timeout=self._paths.fetch_timeout,
            max_workers=self._paths.fetch_jobs,
        )
        for outcome in outcomes:
            if outcome.error is not None:
                self._console.warning(f"propagate {MIRROR_REMOTE} for {outcome.repo}: {outcome.error.detail}")
        return outcomes
