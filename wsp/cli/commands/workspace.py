"""Workspace commands: new, add, rm, delete, list, status, fetch, path."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from wsp.cli.commands._helpers import (
    emit,
    exit_on_error,
    fail,
    load_workspace,
    resolve_members,
    resolve_repo,
    resolve_repos,
)
from wsp.cli.context import CLIContext, build_context
from wsp.core.errors import ErrorCode, NotFound
from wsp.core.result import Err, Ok
from wsp.core.workspace import Active, Context, Workspace, WorkspaceMember
from wsp.output.console import Style
from wsp.services.mirrors import MirrorService
from wsp.services.removal import RemovalService
from wsp.services.workspaces import MemberStatus, WorkspaceService


def _service(ctx: CLIContext) -> WorkspaceService:
    return WorkspaceService(registry=ctx.registry, paths=ctx.paths, console=ctx.console)


def _member_label(member: WorkspaceMember) -> str:
    match member:
        case Active():
            return "active"
        case Context(ref=ref):
            return f"@{ref}"


def _workspace_dict(ws: Workspace) -> dict[str, object]:
    return {
        "name": ws.name,
        "branch": ws.branch,
        "path": str(ws.root),
        "created": ws.meta.created.isoformat(),
        "repos": {
            str(i): {"dir": ws.meta.dir_name(i), "ref": m.ref if isinstance(m, Context) else None}
            for i, m in sorted(ws.meta.members.items())
        },
    }


def new(
    name: str = typer.Argument(..., help="Workspace name"),
    repos: list[str] | None = typer.Argument(None, help="Members as repo or repo@ref (context)"),
    group: list[str] = typer.Option([], "--group", "-g", help="Add every repo of a group (repeatable)"),
) -> None:
    """Create a workspace with one clone per repository."""
    ctx = build_context()
    members = resolve_members(ctx, repos or [], group)
    if not members:
        ctx.console.error("no repositories given (pass repos or --group)")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    ws = exit_on_error(_service(ctx).create(name, members), ctx)
    ctx.console.success(f"workspace {ws.name} ready on branch {ws.branch}")
    ctx.console.print(str(ws.root), Style.DIM)
    emit(ctx, {"workspace": _workspace_dict(ws)})


def add(
    repos: list[str] = typer.Argument(..., help="Members as repo or repo@ref (context)"),
    workspace: str | None = typer.Option(None, "--workspace", "-w", help="Workspace (default: current)"),
) -> None:
    """Add repositories to a workspace."""
    ctx = build_context()
    ws = load_workspace(ctx, workspace)
    members = resolve_members(ctx, repos)

    added = exit_on_error(_service(ctx).add_members(ws.name, members), ctx)
    for identity in added:
        ctx.console.success(f"added {identity}")
    emit(ctx, {"workspace": ws.name, "added": [str(i) for i in added]})


def rm(
    repos: list[str] = typer.Argument(..., help="Members to remove"),
    workspace: str | None = typer.Option(None, "--workspace", "-w", help="Workspace (default: current)"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip safety checks and delete anyway"),
) -> None:
    """Remove repositories from a workspace (deletes their clones)."""
    ctx = build_context()
    ws = load_workspace(ctx, workspace)
    identities = resolve_repos(ctx, repos)

    removed = exit_on_error(_service(ctx).remove_members(ws.name, identities, force=force), ctx)
    for identity in removed:
        ctx.console.success(f"removed {identity}")
    emit(ctx, {"workspace": ws.name, "removed": [str(i) for i in removed]})


def delete(
    name: str = typer.Argument(..., help="Workspace name"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip safety checks and delete anyway"),
    keep_mirror_branches: bool = typer.Option(
        False,
        "--keep-mirror-branches",
        help="Leave the workspace branch in the mirrors",
    ),
) -> None:
    """Delete a workspace once its work is merged or pushed."""
    ctx = build_context()
    service = RemovalService(paths=ctx.paths, console=ctx.console)
    done = exit_on_error(
        service.remove_workspace(name, force=force, delete_mirror_branches=not keep_mirror_branches),
        ctx,
    )
    ctx.console.success(f"workspace {done.name} deleted ({len(done.removed)} clones)")
    emit(ctx, {"deleted": done.name, "branch": done.branch, "repos": list(done.removed)})


def list_workspaces() -> None:
    """List workspaces."""
    ctx = build_context()
    service = _service(ctx)

    workspaces: list[Workspace] = []
    for name in service.names():
        match service.load(name):
            case Ok(ws):
                workspaces.append(ws)
            case Err(e):
                ctx.console.warning(f"{name}: {e.message}")

    if ctx.json_output:
        emit(ctx, {"workspaces": [_workspace_dict(ws) for ws in workspaces]})
        return
    if not workspaces:
        ctx.console.print("no workspaces (wsp new <name> <repos>)", Style.DIM)
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("workspace")
    table.add_column("branch", style="cyan")
    table.add_column("repos", justify="right")
    for ws in workspaces:
        table.add_row(ws.name, ws.branch, str(len(ws.meta.members)))
    Console().print(table)


def _status_dict(st: MemberStatus) -> dict[str, object]:
    return {
        "repo": str(st.identity),
        "dir": st.directory,
        "ref": st.member.ref if isinstance(st.member, Context) else None,
        "branch": st.branch,
        "head": st.head,
        "ahead": st.ahead,
        "behind": st.behind,
        "changed": st.changed,
        "error": st.error,
    }


def _status_row(st: MemberStatus) -> tuple[str, str, Text, Text]:
    where = st.branch or f"({st.head or '?'})"
    if st.error is not None:
        return st.directory, _member_label(st.member), Text(where), Text(st.error, style="red")

    parts: list[tuple[str, str]] = []
    if st.changed:
        parts.append((f"{st.changed} changed", "yellow"))
    if st.ahead:
        parts.append((f"{st.ahead} ahead", "green"))
    if st.behind:
        parts.append((f"{st.behind} behind", "red"))
    state = Text("clean", style="dim") if not parts else Text(", ").join(Text(t, style=s) for t, s in parts)
    return st.directory, _member_label(st.member), Text(where, style="cyan"), state


def status(
    workspace: str | None = typer.Argument(None, help="Workspace (default: current)"),
) -> None:
    """Show branch and pending changes for every clone."""
    ctx = build_context()
    ws = load_workspace(ctx, workspace)
    statuses = _service(ctx).status(ws)

    if ctx.json_output:
        emit(ctx, {"workspace": ws.name, "branch": ws.branch, "repos": [_status_dict(s) for s in statuses]})
        return

    ctx.console.header(f"{ws.name} ({ws.branch})")
    table = Table(show_header=False, box=None, padding=(0, 2))
    for st in statuses:
        table.add_row(*_status_row(st))
    Console().print(table)


def fetch(
    workspace: str | None = typer.Argument(None, help="Workspace (default: current)"),
    prune: bool = typer.Option(False, "--prune", help="Drop mirror branches deleted upstream"),
) -> None:
    """Fetch the workspace's mirrors, then refresh every clone from them."""
    ctx = build_context()
    ws = load_workspace(ctx, workspace)
    mirrors = MirrorService(registry=ctx.registry, paths=ctx.paths, console=ctx.console)

    identities = [i for i in sorted(ws.meta.members) if i in ctx.registry.repos]
    outcomes = mirrors.fetch_all(identities, prune=prune)
    for o in outcomes:
        if o.error is not None:
            ctx.console.warning(o.error.message)

    propagated = _service(ctx).propagate(ws)
    failed = [o.repo for o in [*outcomes, *propagated] if not o.ok]
    if not failed:
        ctx.console.success(f"{ws.name}: {len(identities)} repos up to date")
    emit(
        ctx,
        {
            "workspace": ws.name,
            "mirrors": [o.repo for o in outcomes if o.ok],
            "failed": sorted(set(failed)),
        },
        ok=not failed,
    )
    if failed:
        raise typer.Exit(code=int(ErrorCode.NETWORK_ERROR))


def path_cmd(
    workspace: str | None = typer.Argument(None, help="Workspace (default: current)"),
    repo: str | None = typer.Option(None, "--repo", "-r", help="Print this member's clone instead"),
) -> None:
    """Print a workspace or clone directory, for `cd "$(wsp path feat -r api)"`."""
    ctx = build_context()
    ws = load_workspace(ctx, workspace)
    target = ws.root
    if repo is not None:
        identity = resolve_repo(ctx, repo)
        if identity not in ws.meta.members:
            fail(NotFound(what="member", name=str(identity)), ctx)
        target = ws.clone_dir(identity)

    if ctx.json_output:
        emit(ctx, {"workspace": ws.name, "path": str(target)})
        return
    typer.echo(str(target))
