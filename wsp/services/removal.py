"""Removal orchestration.

Deleting a workspace (or some of its members) destroys local clones, so it
only proceeds when every Active member's work is recoverable:

1. Pending work: any uncommitted file or any commit that no upstream or
   mirror ref contains blocks removal. Nothing is fetched yet.
2. Every Active member fetches `origin --prune` in parallel. A failed fetch
   is a warning; classification continues on the local refs and the verdict
   is marked stale.
3. Each workspace branch is classified (see `wsp.git.safety`). PUSHED_TO_REMOTE
   and UNMERGED block removal.

Blocks are reported together as one `RemovalBlocked` and nothing is
deleted. `force` skips steps 1 to 3 entirely.

Deletion itself is serial. A clone that cannot be deleted is reported in a
`PartialFailure`; the other clones are still removed.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from wsp.core.config import Paths
from wsp.core.errors import (
    DirtyWorkingTree,
    InvalidName,
    NotFound,
    PartialFailure,
    RemovalBlocked,
    RemovalProblem,
    RepoFailure,
    StorageError,
    UnpushedCommits,
    UnsafeBranch,
)
from wsp.core.identity import RepositoryIdentity
from wsp.core.registry import mirror_path
from wsp.core.result import Err, Ok, Result
from wsp.core.workspace import Active, Workspace, load_metadata, save_metadata, validate_name
from wsp.git.multi import fetch_all
from wsp.git.repository import Repository
from wsp.git.runner import GitRunner, SubprocessGit
from wsp.git.safety import classify_member
from wsp.output.console import ConsoleProtocol
from wsp.platform.files import remove_tree

__all__ = ["RemovalService", "RemovedWorkspace"]


@dataclass(frozen=True, slots=True)
class RemovedWorkspace:
    name: str
    branch: str
    removed: tuple[str, ...]


class RemovalService:
    """Decide whether workspace clones may be deleted, and delete them."""

    def __init__(
        self,
        *,
        paths: Paths,
        console: ConsoleProtocol,
        runner: GitRunner | None = None,
    ) -> None:
        self._paths = paths
        self._console = console
        self._git: GitRunner = runner or SubprocessGit()

    def repository(self, ws: Workspace, identity: RepositoryIdentity) -> Repository:
        return Repository(ws.clone_dir(identity), label=str(identity), runner=self._git)

    # -------------------------------------------------------------------------
    # Safety checks
    # -------------------------------------------------------------------------

    def pending_work(self, ws: Workspace, identities: Sequence[RepositoryIdentity]) -> list[RemovalProblem]:
        """Uncommitted files and unpushed commits in the given Active members."""
        problems: list[RemovalProblem] = []
        for identity in identities:
            if not isinstance(ws.meta.members.get(identity), Active):
                continue
            repo = self.repository(ws, identity)
            if not repo.exists():
                self._console.warning(f"{identity}: clone missing at {repo.path}")
                continue

            changed = repo.changed_file_count()
            if isinstance(changed, Err):
                self._console.warning(changed.error.message)
            elif changed.value > 0:
                problems.append(DirtyWorkingTree(repo=str(identity), changed=changed.value))
                continue

            unpushed = repo.unpushed_count()
            if isinstance(unpushed, Err):
                self._console.warning(unpushed.error.message)
            elif unpushed.value > 0:
                problems.append(UnpushedCommits(repo=str(identity), ahead=unpushed.value))
        return problems

    def unsafe_branches(self, ws: Workspace, identities: Sequence[RepositoryIdentity]) -> list[RemovalProblem]:
        """Fetch upstream for the given Active members, then classify their branches."""
        active = [
            i for i in identities if isinstance(ws.meta.members.get(i), Active) and ws.clone_dir(i).is_dir()
        ]
        repos = [self.repository(ws, i) for i in active]
        outcomes = fetch_all(
            repos,
            "origin",
            prune=True,
            timeout=self._paths.fetch_timeout,
            max_workers=self._paths.fetch_jobs,
        )

        problems: list[RemovalProblem] = []
        for identity, repo, outcome in zip(active, repos, outcomes, strict=True):
            if outcome.error is not None:
                self._console.warning(f"fetch failed for {identity}, using local data")
            if not repo.branch_exists(ws.branch):
                continue
            result = classify_member(repo, ws.branch, outcome.error)
            if not result.verdict.is_safe:
                problems.append(
                    UnsafeBranch(
                        repo=str(identity),
                        branch=ws.branch,
                        verdict=result.verdict,
                        stale=result.stale,
                    )
                )
        return problems

    def check(self, ws: Workspace, identities: Sequence[RepositoryIdentity]) -> Result[None, RemovalBlocked]:
        pending = self.pending_work(ws, identities)
        if pending:
            return Err(RemovalBlocked(workspace=ws.name, branch=ws.branch, problems=tuple(pending)))
        unsafe = self.unsafe_branches(ws, identities)
        if unsafe:
            return Err(RemovalBlocked(workspace=ws.name, branch=ws.branch, problems=tuple(unsafe)))
        return Ok(None)

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    def delete_clones(
        self,
        ws: Workspace,
        identities: Sequence[RepositoryIdentity],
    ) -> tuple[list[RepositoryIdentity], list[RepoFailure]]:
        """Delete clone directories one at a time, collecting failures."""
        removed: list[RepositoryIdentity] = []
        failures: list[RepoFailure] = []
        for identity in identities:
            clone = ws.clone_dir(identity)
            try:
                remove_tree(clone)
            except OSError as e:
                failures.append(RepoFailure(repo=str(identity), detail=f"cannot delete {clone}: {e}"))
                continue
            removed.append(identity)
        return removed, failures

    def delete_mirror_branch(self, identity: RepositoryIdentity, branch: str) -> RepoFailure | None:
        mirror = Repository(mirror_path(self._paths.mirrors_dir, identity), label=str(identity), runner=self._git)
        if not mirror.exists() or not mirror.branch_exists(branch):
            return None
        match mirror.delete_ref(f"refs/heads/{branch}"):
            case Err(e):
                return RepoFailure(repo=str(identity), detail=e.message)
            case Ok(_):
                return None

    def remove_workspace(
        self,
        name: str,
        *,
        force: bool = False,
        delete_mirror_branches: bool = True,
    ) -> Result[RemovedWorkspace, InvalidName | NotFound | StorageError | RemovalBlocked | PartialFailure]:
        """Delete a workspace and all of its clones.

        Args:
            name: Workspace name
            force: Skip the pending-work and branch-safety checks
            delete_mirror_branches: Also delete `refs/heads/<branch>` from each mirror

        Returns:
            Ok(RemovedWorkspace) when everything was deleted.
            Err(InvalidName) when `name` is not a plain workspace name.
            Err(RemovalBlocked) when a member still holds unrecovered work.
            Err(PartialFailure) when some clones could not be deleted; the
            metadata then lists only the members that remain.
        """
        checked = validate_name(name)
        if isinstance(checked, Err):
            return checked
        ws_dir = self._paths.workspace_dir(name)
        loaded = load_metadata(ws_dir)
        if isinstance(loaded, Err):
            return loaded
        ws = Workspace(root=ws_dir, meta=loaded.value)

        members = sorted(ws.meta.members)
        if not force:
            checked = self.check(ws, members)
            if isinstance(checked, Err):
                return checked

        removed, failures = self.delete_clones(ws, members)

        if delete_mirror_branches:
            for identity in removed:
                if isinstance(ws.meta.members[identity], Active):
                    failure = self.delete_mirror_branch(identity, ws.branch)
                    if failure is not None:
                        failures.append(failure)

        removed_names = tuple(str(i) for i in removed)
        if len(removed) < len(members):
            for identity in removed:
                del ws.meta.members[identity]
                ws.meta.dirs.pop(identity, None)
            saved = save_metadata(ws_dir, ws.meta)
            if isinstance(saved, Err):
                failures.append(RepoFailure(repo=name, detail=saved.error.message))
            return Err(PartialFailure(operation=f"delete {name}", failures=tuple(failures), succeeded=removed_names))

        try:
            remove_tree(ws_dir)
        except OSError as e:
            failures.append(RepoFailure(repo=name, detail=f"cannot delete {ws_dir}: {e}"))

        if failures:
            return Err(PartialFailure(operation=f"delete {name}", failures=tuple(failures), succeeded=removed_names))
        return Ok(RemovedWorkspace(name=name, branch=ws.branch, removed=removed_names))
