"""Repository identity: parsing URLs and resolving short names.

A repository is identified by `host/owner/name`. The owner may span several
segments (GitLab subgroups: `gitlab.com/org/sub/project`); the last segment
is always the repository name.

Identities become filesystem paths (`mirrors/<host>/<owner>/<name>.git`), so
every segment is validated before anything is built from it. Segments equal
to `.` or `..`, empty segments, and segments hiding a path separator behind
percent-encoding are rejected outright, never cleaned up.

Usage:
    match parse("git@github.com:acme/api.git"):
        case Ok(identity):
            str(identity)            # "github.com/acme/api"
        case Err(e):
            print(e.message)

    resolve("api", registry.identities())   # Ok(github.com/acme/api)
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import unquote, urlsplit

from .errors import AmbiguousIdentity, IdentityError, InvalidIdentity, NotFound, PathTraversal
from .result import Err, Ok, Result

__all__ = [
    "RepositoryIdentity",
    "from_identity",
    "parse",
    "resolve",
    "shortnames",
    "split_repo_ref",
]

# user@host:path (scp-like ssh syntax, no scheme)
_SCP_RE = re.compile(r"^(?:(?P<user>[^@/:]+)@)?(?P<host>[^@/:]+):(?P<path>.+)$")

_SUPPORTED_SCHEMES = frozenset({"http", "https", "ssh", "git", "file"})


@dataclass(frozen=True, slots=True, order=True)
class RepositoryIdentity:
    """Canonical `(host, owner, name)` triple."""

    host: str
    owner: str
    name: str

    def __str__(self) -> str:
        return f"{self.host}/{self.owner}/{self.name}"

    @property
    def segments(self) -> tuple[str, ...]:
        return (self.host, *self.owner.split("/"), self.name)

    def mirror_relpath(self) -> PurePosixPath:
        """Relative location of the bare mirror: `host/owner/name.git`."""
        return PurePosixPath(self.host, *self.owner.split("/"), f"{self.name}.git")

    @property
    def qualified_dir_name(self) -> str:
        """Clone directory name used when two members share a repo name."""
        return f"{self.owner.replace('/', '-')}-{self.name}"

    @property
    def host_qualified_dir_name(self) -> str:
        """Clone directory name used when owner and repo name both collide across hosts."""
        return f"{self.host}-{self.qualified_dir_name}"


def _check_segment(raw: str, segment: str) -> IdentityError | None:
    if segment == "..":
        return PathTraversal(value=raw, segment=segment)
    if "/" in segment or "\\" in segment:
        return PathTraversal(value=raw, segment=segment)
    if not segment:
        return InvalidIdentity(value=raw, reason="empty path segment")
    if segment == ".":
        return InvalidIdentity(value=raw, reason="path segment '.' is not allowed")
    if "\0" in segment:
        return InvalidIdentity(value=raw, reason="null byte in path")
    if segment.startswith("-"):
        return InvalidIdentity(value=raw, reason=f"segment {segment!r} starts with '-'")
    return None


def _build(raw: str, host: str, path_segments: list[str]) -> Result[RepositoryIdentity, IdentityError]:
    host = host.lower()
    if not host:
        return Err(InvalidIdentity(value=raw, reason="missing host"))

    decoded = [unquote(s) for s in path_segments]
    for segment in (host, *decoded):
        problem = _check_segment(raw, segment)
        if problem is not None:
            return Err(problem)

    if len(decoded) < 2:
        return Err(InvalidIdentity(value=raw, reason="expected <owner>/<name> in path"))

    return Ok(
        RepositoryIdentity(
            host=host,
            owner="/".join(decoded[:-1]),
            name=decoded[-1],
        )
    )


def _strip_git_suffix(path: str) -> str:
    return path[: -len(".git")] if path.endswith(".git") else path


def parse(url: str) -> Result[RepositoryIdentity, IdentityError]:
    """Parse an SSH, scp-like or HTTP(S) clone URL into an identity.

    `file://` URLs are accepted as well (host `localhost` when empty) so
    local repositories can be registered.
    """
    raw = url.strip()
    if not raw:
        return Err(InvalidIdentity(value=url, reason="empty URL"))

    if "://" not in raw:
        m = _SCP_RE.match(raw)
        if m is None:
            return Err(InvalidIdentity(value=url, reason="not a recognized git URL"))
        path = _strip_git_suffix(m.group("path").lstrip("/"))
        return _build(raw, m.group("host"), path.split("/"))

    parts = urlsplit(raw)
    if parts.scheme not in _SUPPORTED_SCHEMES:
        return Err(InvalidIdentity(value=url, reason=f"unsupported scheme {parts.scheme!r}"))

    host = parts.hostname or ("localhost" if parts.scheme == "file" else "")
    path = _strip_git_suffix(parts.path.lstrip("/"))
    return _build(raw, host, path.split("/"))


def from_identity(text: str) -> Result[RepositoryIdentity, IdentityError]:
    """Parse a canonical `host/owner/name` string (as stored on disk)."""
    segments = text.split("/")
    if len(segments) < 3:
        return Err(InvalidIdentity(value=text, reason="expected <host>/<owner>/<name>"))
    return _build(text, segments[0], segments[1:])


def resolve(
    query: str,
    registered: Iterable[RepositoryIdentity],
) -> Result[RepositoryIdentity, AmbiguousIdentity | NotFound]:
    """Resolve user input to exactly one registered identity.

    Pure function of `query` and `registered`. An exact canonical match wins.
    Otherwise the input is split on `/` and compared against the trailing
    segments of every identity: `api` matches on the repo name alone,
    `acme/api` on owner and name, and so on up to the full identity. The
    whole input must match, so `other/api` never resolves to `acme/api`.
    """
    identities = sorted(set(registered))
    for identity in identities:
        if str(identity) == query:
            return Ok(identity)

    wanted = tuple(query.split("/"))
    if not query or any(not s for s in wanted):
        return Err(NotFound(what="repo", name=query))

    depth = len(wanted)
    candidates = [i for i in identities if len(i.segments) >= depth and i.segments[-depth:] == wanted]
    match candidates:
        case []:
            return Err(NotFound(what="repo", name=query))
        case [only]:
            return Ok(only)
        case _:
            return Err(AmbiguousIdentity(query=query, matches=tuple(str(c) for c in candidates)))


def shortnames(identities: Iterable[RepositoryIdentity]) -> dict[RepositoryIdentity, str]:
    """Shortest unique suffix for each identity.

    `github.com/acme/api` and `github.com/other/api` become `acme/api` and
    `other/api`; a lone `github.com/acme/web` becomes `web`.
    """
    ids = sorted(set(identities))
    result: dict[RepositoryIdentity, str] = {}
    for identity in ids:
        parts = identity.segments
        result[identity] = str(identity)
        for depth in range(1, len(parts) + 1):
            candidate = parts[-depth:]
            clash = any(
                other != identity and len(other.segments) >= depth and other.segments[-depth:] == candidate
                for other in ids
            )
            if not clash:
                result[identity] = "/".join(candidate)
                break
    return result


def split_repo_ref(arg: str) -> tuple[str, str | None]:
    """Split `name@ref` on the last `@`.

    `api@v1.0` -> (`api`, `v1.0`); `api` -> (`api`, None). A trailing `@`, or
    an `@` that belongs to an scp-like URL (`git@host:o/r`), is not a ref.
    """
    i = arg.rfind("@")
    if i < 0 or i == len(arg) - 1:
        return arg, None
    ref = arg[i + 1 :]
    if ":" in ref:
        return arg, None
    return arg[:i], ref
