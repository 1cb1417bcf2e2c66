"""Git repository abstraction.

This module provides the Repository class for single-repo git operations.
Operations that can fail return Result types; yes/no probes
(`branch_exists`, `ref_exists`) return plain booleans.

Usage:
    repo = Repository(Path("/path/to/clone"), label="github.com/acme/api")

    match repo.status():
        case Ok(status):
            print(f"Branch: {status.branch}")
        case Err(e):
            print(f"Error: {e.message}")

    match repo.fetch("origin", prune=True, timeout=180):
        case Err(e):
            print(f"warning: {e.message}")
        case Ok(_):
            pass
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from wsp.core.errors import FetchFailed, GitFailed
from wsp.core.result import Err, Ok, Result
from wsp.platform.process import CommandOutput

from .runner import GitRunner, SubprocessGit

__all__ = [
    "GitStatus",
    "Repository",
    "StatusEntry",
]

_NETWORK_TIMEOUT_SECONDS = 3 * 60.0


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A single entry in git status.

    Attributes:
        xy: Two-character status code (e.g., "M ", " M", "??")
        path: File path
    """

    xy: str
    path: str

    @property
    def is_staged(self) -> bool:
        return self.xy != "??" and self.xy[0] != " "

    @property
    def is_unstaged(self) -> bool:
        return self.xy != "??" and self.xy[1] != " "

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"


@dataclass(frozen=True, slots=True)
class GitStatus:
    """Parsed `git status --porcelain=v1 -b`.

    Attributes:
        branch: Current branch name ("HEAD (no branch)" when detached)
        upstream: Upstream branch (e.g., "origin/main"), None if not set
        ahead: Number of commits ahead of upstream
        behind: Number of commits behind upstream
        entries: All status entries (staged, unstaged, untracked)
    """

    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return len(self.entries) == 0

    @property
    def is_detached(self) -> bool:
        return self.branch.startswith("HEAD")

    @property
    def changed_count(self) -> int:
        return len(self.entries)

    @property
    def untracked_count(self) -> int:
        return sum(1 for e in self.entries if e.is_untracked)


class Repository:
    """A git working clone or bare mirror on disk.

    Attributes:
        path: Repository directory
        label: Name used in error messages (usually the canonical identity)
    """

    def __init__(self, path: Path, *, label: str | None = None, runner: GitRunner | None = None) -> None:
        self.path = path
        self.label = label or path.name
        self._git: GitRunner = runner or SubprocessGit()

    def exists(self) -> bool:
        return (self.path / ".git").exists() or (self.path / "HEAD").is_file()

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    @classmethod
    def clone_bare(
        cls,
        url: str,
        dest: Path,
        *,
        label: str,
        runner: GitRunner | None = None,
        timeout: float = _NETWORK_TIMEOUT_SECONDS,
    ) -> Result[Repository, FetchFailed]:
        """`git clone --bare <url> <dest>`. Network failures are FetchFailed."""
        git: GitRunner = runner or SubprocessGit()
        dest.parent.mkdir(parents=True, exist_ok=True)
        out = git.run(["clone", "--bare", url, str(dest)], None, timeout=timeout)
        if not out.ok:
            return Err(FetchFailed(repo=label, remote=url, detail=_detail(out), timed_out=out.timed_out))
        return Ok(cls(dest, label=label, runner=git))

    @classmethod
    def clone_local(
        cls,
        source: Path,
        dest: Path,
        *,
        origin: str,
        label: str,
        runner: GitRunner | None = None,
        timeout: float | None = None,
    ) -> Result[Repository, GitFailed]:
        """`git clone --local --origin <origin> <source> <dest>` (hardlinked objects)."""
        git: GitRunner = runner or SubprocessGit()
        out = git.run(["clone", "--local", "--origin", origin, str(source), str(dest)], None, timeout=timeout)
        if not out.ok:
            return Err(GitFailed(repo=label, operation="clone --local", detail=_detail(out), returncode=out.returncode))
        return Ok(cls(dest, label=label, runner=git))

    # -------------------------------------------------------------------------
    # Working tree state
    # -------------------------------------------------------------------------

    def status(self) -> Result[GitStatus, GitFailed]:
        """Get repository status.

        Runs `git status --porcelain=v1 -b` and parses the output.
        """
        match self._run(["status", "--porcelain=v1", "-b"], "status"):
            case Err(e):
                return Err(e)
            case Ok(stdout):
                return Ok(self._parse_status(stdout))

    def changed_file_count(self) -> Result[int, GitFailed]:
        """Modified, staged and untracked files (`git status --short` lines)."""
        match self._run(["status", "--short"], "status"):
            case Err(e):
                return Err(e)
            case Ok(stdout):
                return Ok(len([ln for ln in stdout.splitlines() if ln.strip()]))

    def unpushed_count(self) -> Result[int, GitFailed]:
        """Commits on HEAD that no upstream or mirror ref contains."""
        args = ["rev-list", "--count", "HEAD", "--not", "--remotes=origin", "--remotes=wsp-mirror"]
        match self._run(args, "rev-list"):
            case Err(e):
                return Err(e)
            case Ok(stdout):
                try:
                    return Ok(int(stdout.strip() or "0"))
                except ValueError:
                    return Err(GitFailed(repo=self.label, operation="rev-list", detail=f"unexpected output {stdout!r}"))

    def current_branch(self) -> str | None:
        """Current branch name; None if detached HEAD or error."""
        match self._run(["rev-parse", "--abbrev-ref", "HEAD"], "rev-parse"):
            case Ok(stdout):
                branch = stdout.strip()
                return None if branch == "HEAD" else branch
            case Err(_):
                return None

    def head_commit(self) -> str | None:
        match self._run(["rev-parse", "--short", "HEAD"], "rev-parse"):
            case Ok(stdout):
                return stdout.strip() or None
            case Err(_):
                return None

    # -------------------------------------------------------------------------
    # Refs
    # -------------------------------------------------------------------------

    def ref_exists(self, ref: str) -> bool:
        return self._probe(["rev-parse", "--verify", "--quiet", ref]).ok

    def branch_exists(self, branch: str) -> bool:
        return self.ref_exists(f"refs/heads/{branch}")

    def default_branch(self, remote: str = "origin") -> str | None:
        """Default branch from `refs/remotes/<remote>/HEAD`, else from local HEAD."""
        for ref in (f"refs/remotes/{remote}/HEAD", "HEAD"):
            out = self._probe(["symbolic-ref", ref])
            if not out.ok:
                continue
            parts = out.stdout.strip().split("/")
            if len(parts) >= 3:
                return "/".join(parts[2:] if ref == "HEAD" else parts[3:])
        return None

    def delete_ref(self, ref: str) -> Result[None, GitFailed]:
        return self._run(["update-ref", "-d", ref], "update-ref").map(lambda _: None)

    def set_symbolic_ref(self, name: str, target: str) -> Result[None, GitFailed]:
        return self._run(["symbolic-ref", name, target], "symbolic-ref").map(lambda _: None)

    # -------------------------------------------------------------------------
    # Config and remotes
    # -------------------------------------------------------------------------

    def get_config(self, key: str) -> str | None:
        out = self._probe(["config", "--get", key])
        return out.stdout.strip() if out.ok else None

    def set_config(self, key: str, value: str) -> Result[None, GitFailed]:
        return self._run(["config", key, value], "config").map(lambda _: None)

    def add_config(self, key: str, value: str) -> Result[None, GitFailed]:
        return self._run(["config", "--add", key, value], "config --add").map(lambda _: None)

    def set_remote(self, name: str, url: str) -> Result[None, GitFailed]:
        """Point remote `name` at `url`, replacing any existing definition."""
        self._probe(["remote", "remove", name])
        return self._run(["remote", "add", name, url], "remote add").map(lambda _: None)

    def set_remote_head(self, remote: str, branch: str) -> Result[None, GitFailed]:
        return self._run(["remote", "set-head", remote, branch], "remote set-head").map(lambda _: None)

    def fetch(
        self,
        remote: str,
        *,
        prune: bool = False,
        timeout: float = _NETWORK_TIMEOUT_SECONDS,
    ) -> Result[None, FetchFailed]:
        """Fetch one remote. Failure is recoverable: refs stay as they were."""
        args = ["fetch", remote]
        if prune:
            args.append("--prune")
        out = self._git.run(args, self.path, timeout=timeout)
        if not out.ok:
            return Err(FetchFailed(repo=self.label, remote=remote, detail=_detail(out), timed_out=out.timed_out))
        return Ok(None)

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    def checkout(self, ref: str, *, timeout: float | None = None) -> Result[None, GitFailed]:
        return self._run(["checkout", ref], "checkout", timeout=timeout).map(lambda _: None)

    def checkout_new_branch(
        self,
        branch: str,
        start_point: str,
        *,
        reset: bool = False,
        timeout: float | None = None,
    ) -> Result[None, GitFailed]:
        """Create `branch` at `start_point` without tracking; `reset` moves an existing one."""
        flag = "-B" if reset else "-b"
        args = ["checkout", flag, branch, "--no-track", start_point]
        return self._run(args, f"checkout {flag}", timeout=timeout).map(lambda _: None)

    def checkout_detached(self, ref: str, *, timeout: float | None = None) -> Result[None, GitFailed]:
        return self._run(["checkout", "--detach", ref], "checkout --detach", timeout=timeout).map(lambda _: None)

    def set_upstream(self, remote_branch: str) -> Result[None, GitFailed]:
        return self._run(["branch", "--set-upstream-to", remote_branch], "branch --set-upstream-to").map(
            lambda _: None
        )

    # -------------------------------------------------------------------------
    # History queries
    # -------------------------------------------------------------------------

    def is_ancestor(self, commit: str, target: str) -> Result[bool, GitFailed]:
        """`git merge-base --is-ancestor`: exit 0 yes, 1 no, anything else fails."""
        out = self._probe(["merge-base", "--is-ancestor", commit, target])
        match out.returncode:
            case 0:
                return Ok(True)
            case 1:
                return Ok(False)
            case _:
                return Err(self._failure("merge-base --is-ancestor", out))

    def merge_base(self, a: str, b: str) -> Result[str, GitFailed]:
        return self._run(["merge-base", a, b], "merge-base").map(str.strip)

    def tree_of(self, rev: str) -> Result[str, GitFailed]:
        return self._run(["rev-parse", f"{rev}^{{tree}}"], "rev-parse").map(str.strip)

    def commit_tree(
        self,
        tree: str,
        parent: str,
        message: str,
        *,
        env: Mapping[str, str] | None = None,
    ) -> Result[str, GitFailed]:
        """Create a dangling commit object; nothing references it afterwards."""
        return self._run(["commit-tree", tree, "-p", parent, "-m", message], "commit-tree", env=env).map(
            str.strip
        )

    def cherry(self, upstream: str, head: str) -> Result[str, GitFailed]:
        return self._run(["cherry", upstream, head], "cherry").map(str.strip)

    def changed_files(self, base: str, head: str) -> Result[list[str], GitFailed]:
        match self._run(["diff", "--name-only", base, head], "diff --name-only"):
            case Err(e):
                return Err(e)
            case Ok(stdout):
                return Ok([ln for ln in stdout.splitlines() if ln])

    def diff_quiet(self, a: str, b: str, paths: Sequence[str]) -> Result[bool, GitFailed]:
        """True if `paths` are identical between `a` and `b`."""
        out = self._probe(["diff", "--quiet", a, b, "--", *paths])
        match out.returncode:
            case 0:
                return Ok(True)
            case 1:
                return Ok(False)
            case _:
                return Err(self._failure("diff --quiet", out))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _probe(self, args: list[str]) -> CommandOutput:
        return self._git.run(args, self.path)

    def _run(
        self,
        args: list[str],
        operation: str,
        *,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Result[str, GitFailed]:
        out = self._git.run(args, self.path, env=env, timeout=timeout)
        if not out.ok:
            return Err(self._failure(operation, out))
        return Ok(out.stdout)

    def _failure(self, operation: str, out: CommandOutput) -> GitFailed:
        return GitFailed(repo=self.label, operation=operation, detail=_detail(out), returncode=out.returncode)

    def _parse_status(self, output: str) -> GitStatus:
        """Parse git status --porcelain=v1 -b output."""
        lines = [ln for ln in output.splitlines() if ln.strip()]

        if not lines:
            return GitStatus(branch="")

        # ## branch...upstream [ahead N, behind M]
        branch_line = lines[0]
        branch, upstream = self._parse_branch_line(branch_line)
        ahead, behind = self._parse_ahead_behind(branch_line)

        entries = [StatusEntry(xy=line[:2], path=line[3:]) for line in lines[1:] if len(line) >= 4]

        return GitStatus(
            branch=branch,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
            entries=tuple(entries),
        )

    def _parse_branch_line(self, line: str) -> tuple[str, str | None]:
        s = line.strip()
        if s.startswith("##"):
            s = s[2:].lstrip()

        s = s.split(" [", 1)[0].strip()

        if "..." in s:
            left, right = s.split("...", 1)
            return (left.strip(), right.strip())

        return (s, None)

    def _parse_ahead_behind(self, line: str) -> tuple[int, int]:
        match = re.search(r"\[([^\]]+)\]", line)
        if not match:
            return (0, 0)

        inside = match.group(1)
        ahead_match = re.search(r"ahead\s+(\d+)", inside)
        behind_match = re.search(r"behind\s+(\d+)", inside)

        ahead = int(ahead_match.group(1)) if ahead_match else 0
        behind = int(behind_match.group(1)) if behind_match else 0
        return (ahead, behind)


def _detail(out: CommandOutput) -> str:
    text = out.stderr.strip() or out.stdout.strip()
    return text.splitlines()[-1] if text else ""
