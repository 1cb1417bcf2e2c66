"""Branch safety classification.

Decides whether deleting a workspace branch can lose work. Rules are checked
in a fixed order and the first match wins:

1. MERGED: the branch tip is an ancestor of the target.
2. SQUASH_MERGED: either
   a. a synthetic commit holding the branch tree on top of the merge base
      has an equivalent patch in the target (`git cherry` prints `-`), or
   b. every file the branch changed since the merge base is identical in
      the target.
3. PUSHED_TO_REMOTE: `refs/remotes/origin/<branch>` exists.
4. UNMERGED: everything else.

The target is `origin/<default>` when that ref exists, otherwise the local
default branch. A probe that errors counts as "rule does not match"; the
classifier itself never fails.

Known limitation: a squash merge whose conflicts were resolved by hand ends
with content that matches neither 2a nor 2b and is reported as
PUSHED_TO_REMOTE or UNMERGED.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from wsp.core.errors import FetchFailed, GitFailed
from wsp.core.result import Err, Result
from wsp.core.verdict import BranchSafety

__all__ = [
    "BranchProbe",
    "Classification",
    "classify",
    "classify_member",
    "merge_target",
]

_SYNTHETIC_IDENTITY = {
    "GIT_AUTHOR_NAME": "wsp",
    "GIT_AUTHOR_EMAIL": "wsp@localhost",
    "GIT_COMMITTER_NAME": "wsp",
    "GIT_COMMITTER_EMAIL": "wsp@localhost",
}


class BranchProbe(Protocol):
    """The git queries classification needs. `Repository` implements it."""

    def is_ancestor(self, commit: str, target: str) -> Result[bool, GitFailed]: ...

    def merge_base(self, a: str, b: str) -> Result[str, GitFailed]: ...

    def tree_of(self, rev: str) -> Result[str, GitFailed]: ...

    def commit_tree(
        self,
        tree: str,
        parent: str,
        message: str,
        *,
        env: Mapping[str, str] | None = None,
    ) -> Result[str, GitFailed]: ...

    def cherry(self, upstream: str, head: str) -> Result[str, GitFailed]: ...

    def changed_files(self, base: str, head: str) -> Result[list[str], GitFailed]: ...

    def diff_quiet(self, a: str, b: str, paths: Sequence[str]) -> Result[bool, GitFailed]: ...

    def ref_exists(self, ref: str) -> bool: ...

    def default_branch(self, remote: str = "origin") -> str | None: ...


@dataclass(frozen=True, slots=True)
class Classification:
    """A verdict plus how much to trust it.

    Attributes:
        verdict: First matching rule
        target: Ref the branch was compared against (None if undeterminable)
        stale: True if the preceding fetch failed and local refs were used
        fetch_error: The fetch failure behind `stale`
    """

    verdict: BranchSafety
    target: str | None = None
    stale: bool = False
    fetch_error: FetchFailed | None = None


def _is_merged(probe: BranchProbe, branch: str, target: str) -> bool:
    return probe.is_ancestor(branch, target).unwrap_or(False)


def _is_squash_merged(probe: BranchProbe, branch: str, target: str) -> bool:
    base = probe.merge_base(branch, target)
    if isinstance(base, Err):
        return False
    tree = probe.tree_of(branch)
    if isinstance(tree, Err):
        return False
    synthetic = probe.commit_tree(tree.value, base.value, "_", env=_SYNTHETIC_IDENTITY)
    if isinstance(synthetic, Err):
        return False
    return probe.cherry(target, synthetic.value).unwrap_or("").startswith("-")


def _is_content_merged(probe: BranchProbe, branch: str, target: str) -> bool:
    base = probe.merge_base(branch, target)
    if isinstance(base, Err):
        return False
    files = probe.changed_files(base.value, branch).unwrap_or([])
    if not files:
        # nothing changed on the branch: content proves nothing
        return False
    return probe.diff_quiet(target, branch, files).unwrap_or(False)


def classify(probe: BranchProbe, branch: str, target: str) -> BranchSafety:
    """Classify `branch` against `target`. Pure decision over the probe's answers."""
    if _is_merged(probe, branch, target):
        return BranchSafety.MERGED
    if _is_squash_merged(probe, branch, target):
        return BranchSafety.SQUASH_MERGED
    if _is_content_merged(probe, branch, target):
        return BranchSafety.SQUASH_MERGED
    if probe.ref_exists(f"refs/remotes/origin/{branch}"):
        return BranchSafety.PUSHED_TO_REMOTE
    return BranchSafety.UNMERGED


def merge_target(probe: BranchProbe) -> str | None:
    """`origin/<default>` if present locally, else `<default>`; None if unknown."""
    default = probe.default_branch("origin")
    if default is None:
        return None
    remote_ref = f"origin/{default}"
    if probe.ref_exists(f"refs/remotes/{remote_ref}"):
        return remote_ref
    return default


def classify_member(
    probe: BranchProbe,
    branch: str,
    fetch_error: FetchFailed | None = None,
) -> Classification:
    """Classify one Active member's workspace branch.

    Always returns a verdict. `fetch_error` is the outcome of the fetch that
    was supposed to refresh `origin`; when set, the verdict is marked stale.
    Without a resolvable target, nothing can be proven merged, so the branch
    falls through to the remote-existence rule.
    """
    stale = fetch_error is not None
    target = merge_target(probe)
    if target is None:
        verdict = (
            BranchSafety.PUSHED_TO_REMOTE
            if probe.ref_exists(f"refs/remotes/origin/{branch}")
            else BranchSafety.UNMERGED
        )
        return Classification(verdict=verdict, target=None, stale=stale, fetch_error=fetch_error)
    return Classification(
        verdict=classify(probe, branch, target),
        target=target,
        stale=stale,
        fetch_error=fetch_error,
    )
