"""`wsp group`: named sets of repositories."""

from __future__ import annotations

import typer

from wsp.cli.commands._helpers import emit, exit_on_error, resolve_repos
from wsp.cli.context import build_context
from wsp.core.identity import shortnames
from wsp.output.console import Style
from wsp.services.groups import GroupService

group_app = typer.Typer(add_completion=False, no_args_is_help=True)


@group_app.command("new")
def new(
    name: str = typer.Argument(..., help="Group name"),
    repos: list[str] = typer.Argument(..., help="Member repositories"),
) -> None:
    """Create a group."""
    ctx = build_context()
    identities = resolve_repos(ctx, repos)
    members = exit_on_error(GroupService(registry=ctx.registry).create(name, identities), ctx)
    ctx.save_registry()
    ctx.console.success(f"group {name} created ({len(members)} repos)")
    emit(ctx, {"group": name, "repos": [str(i) for i in members]})


@group_app.command("list")
def list_groups() -> None:
    """List groups."""
    ctx = build_context()
    service = GroupService(registry=ctx.registry)
    names = service.names()

    if ctx.json_output:
        emit(ctx, {"groups": {n: [str(i) for i in ctx.registry.groups[n]] for n in names}})
        return
    if not names:
        ctx.console.print("no groups", Style.DIM)
        return

    short = shortnames(ctx.registry.identities())
    for n in names:
        members = ", ".join(short.get(i, str(i)) for i in ctx.registry.groups[n])
        ctx.console.print(f"{n}: {members}")


@group_app.command("show")
def show(name: str = typer.Argument(..., help="Group name")) -> None:
    """Show a group's repositories."""
    ctx = build_context()
    members = exit_on_error(GroupService(registry=ctx.registry).get(name), ctx)

    emit(ctx, {"group": name, "repos": [str(i) for i in members]})
    if not ctx.json_output:
        ctx.console.header(name)
        for identity in members:
            ctx.console.print(f"  {identity}")


@group_app.command("update")
def update(
    name: str = typer.Argument(..., help="Group name"),
    add: list[str] = typer.Option([], "--add", "-a", help="Repository to add (repeatable)"),
    remove: list[str] = typer.Option([], "--remove", "-r", help="Repository to remove (repeatable)"),
) -> None:
    """Add or remove repositories in a group."""
    ctx = build_context()
    service = GroupService(registry=ctx.registry)
    members = exit_on_error(
        service.update(name, add=resolve_repos(ctx, add), remove=resolve_repos(ctx, remove)),
        ctx,
    )
    ctx.save_registry()
    ctx.console.success(f"group {name} updated ({len(members)} repos)")
    emit(ctx, {"group": name, "repos": [str(i) for i in members]})


@group_app.command("delete")
def delete(name: str = typer.Argument(..., help="Group name")) -> None:
    """Delete a group. Mirrors are kept."""
    ctx = build_context()
    exit_on_error(GroupService(registry=ctx.registry).delete(name), ctx)
    ctx.save_registry()
    ctx.console.success(f"group {name} deleted")
    emit(ctx, {"deleted": name})
