"""`wsp repo`: register, list, fetch and remove mirrors."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from wsp.cli.commands._helpers import emit, exit_on_error, fail, resolve_repo, resolve_repos
from wsp.cli.context import build_context
from wsp.core.errors import ErrorCode
from wsp.core.result import Err
from wsp.output.console import Style
from wsp.services.mirrors import MirrorService

repo_app = typer.Typer(add_completion=False, no_args_is_help=True)


@repo_app.command("add")
def add(
    urls: list[str] = typer.Argument(..., help="Repository URLs (ssh, https or file)"),
) -> None:
    """Register repositories and create their bare mirrors."""
    ctx = build_context()
    service = MirrorService(registry=ctx.registry, paths=ctx.paths, console=ctx.console)

    added: list[str] = []
    for url in urls:
        result = service.register(url)
        if isinstance(result, Err):
            if added:
                ctx.save_registry()
            fail(result.error, ctx)
        added.append(str(result.value))
        ctx.console.success(f"registered {result.value}")

    ctx.save_registry()
    emit(ctx, {"added": added})


@repo_app.command("list")
def list_repos() -> None:
    """List registered repositories."""
    ctx = build_context()
    infos = MirrorService(registry=ctx.registry, paths=ctx.paths, console=ctx.console).list()

    if ctx.json_output:
        emit(
            ctx,
            {
                "repos": [
                    {
                        "identity": str(i.identity),
                        "shortname": i.shortname,
                        "url": i.url,
                        "added": i.added.isoformat(),
                        "path": str(i.path),
                    }
                    for i in infos
                ]
            },
        )
        return

    if not infos:
        ctx.console.print("no repositories registered (wsp repo add <url>)", Style.DIM)
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("name")
    table.add_column("identity", style="dim")
    table.add_column("url")
    for i in infos:
        table.add_row(i.shortname, str(i.identity), i.url)
    Console().print(table)


@repo_app.command("remove")
def remove(
    repo: str = typer.Argument(..., help="Repository (name, owner/name or full identity)"),
) -> None:
    """Delete a mirror and forget the repository."""
    ctx = build_context()
    identity = resolve_repo(ctx, repo)
    service = MirrorService(registry=ctx.registry, paths=ctx.paths, console=ctx.console)

    groups = exit_on_error(service.remove(identity), ctx)
    ctx.save_registry()
    ctx.console.success(f"removed {identity}")
    emit(ctx, {"removed": str(identity), "groups": groups})


@repo_app.command("fetch")
def fetch(
    repos: list[str] | None = typer.Argument(None, help="Repositories to fetch (default: all)"),
    prune: bool = typer.Option(False, "--prune", help="Drop mirror branches deleted upstream"),
) -> None:
    """Fetch mirrors from their upstream, in parallel."""
    ctx = build_context()
    service = MirrorService(registry=ctx.registry, paths=ctx.paths, console=ctx.console)
    identities = resolve_repos(ctx, repos) if repos else None

    outcomes = service.fetch_all(identities, prune=prune)
    failed = [o for o in outcomes if o.error is not None]
    for o in outcomes:
        if o.error is None:
            ctx.console.success(f"fetched {o.repo}")
        else:
            ctx.console.warning(o.error.message)

    emit(
        ctx,
        {
            "fetched": [o.repo for o in outcomes if o.ok],
            "failed": [{"repo": o.repo, "detail": o.error.detail} for o in failed if o.error is not None],
        },
        ok=not failed,
    )
    if failed:
        raise typer.Exit(code=int(ErrorCode.NETWORK_ERROR))
