"""Shared helpers for CLI commands."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import typer

from wsp.core.errors import NotFound, WspError
from wsp.core.identity import RepositoryIdentity, resolve, split_repo_ref
from wsp.core.result import Err, Result
from wsp.core.workspace import Workspace, WorkspaceMember, detect, member_from_ref
from wsp.output.render import dump_json, error_exit_code, error_to_dict, print_error
from wsp.services.workspaces import WorkspaceService

if TYPE_CHECKING:
    from wsp.cli.context import CLIContext


def fail(error: WspError, ctx: CLIContext) -> NoReturn:
    """Report `error` (text or JSON) and exit with its code."""
    if ctx.json_output:
        typer.echo(dump_json({"ok": False, "error": error_to_dict(error)}))
    else:
        print_error(error, ctx.console)
    raise typer.Exit(code=error_exit_code(error))


def exit_on_error[T, E: WspError](result: Result[T, E], ctx: CLIContext) -> T:
    """Return the Ok value, or report the error and exit.

    This helper reduces boilerplate for the common pattern:
        match result:
            case Err(e):
                print_error(e, ctx.console)
                raise typer.Exit(code=error_exit_code(e))
            case Ok(value):
                ...
    """
    if isinstance(result, Err):
        fail(result.error, ctx)
    return result.value


def emit(ctx: CLIContext, payload: dict[str, object], *, ok: bool = True) -> None:
    """Print a JSON result payload when `--json` is active."""
    if ctx.json_output:
        typer.echo(dump_json({"ok": ok, **payload}))


def resolve_repo(ctx: CLIContext, query: str) -> RepositoryIdentity:
    return exit_on_error(resolve(query, ctx.registry.repos), ctx)


def resolve_repos(ctx: CLIContext, queries: Sequence[str]) -> list[RepositoryIdentity]:
    return [resolve_repo(ctx, q) for q in queries]


def resolve_members(
    ctx: CLIContext,
    args: Sequence[str],
    groups: Sequence[str] = (),
) -> list[tuple[RepositoryIdentity, WorkspaceMember]]:
    """Turn `repo[@ref]` arguments and group names into workspace members.

    Explicit arguments win over group entries for the same repository.
    """
    members: dict[RepositoryIdentity, WorkspaceMember] = {}
    for group in groups:
        identities = ctx.registry.groups.get(group)
        if identities is None:
            fail(NotFound(what="group", name=group), ctx)
        for identity in identities:
            members.setdefault(identity, member_from_ref(None))
    for arg in args:
        query, ref = split_repo_ref(arg)
        members[resolve_repo(ctx, query)] = member_from_ref(ref)
    return list(members.items())


def load_workspace(ctx: CLIContext, name: str | None) -> Workspace:
    """Load workspace `name`, or the one containing the current directory."""
    service = WorkspaceService(registry=ctx.registry, paths=ctx.paths, console=ctx.console)
    if name:
        return exit_on_error(service.load(name), ctx)
    root = exit_on_error(detect(Path.cwd()), ctx)
    return exit_on_error(service.load_dir(root), ctx)

