from __future__ import annotations

import os

import typer

from wsp import __version__
from wsp.cli.commands.config_cmd import config_app
from wsp.cli.commands.group import group_app
from wsp.cli.commands.repo import repo_app
from wsp.cli.commands.workspace import add, delete, fetch, list_workspaces, new, path_cmd, rm, status
from wsp.cli.context import JSON_ENV


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Multi-repository workspaces backed by local mirrors.",
)


# Commands
app.command()(new)
app.command()(add)
app.command()(rm)
app.command()(delete)
app.command("list")(list_workspaces)
app.command()(status)
app.command()(fetch)
app.command("path")(path_cmd)

# Sub-apps
app.add_typer(repo_app, name="repo", help="Register and fetch mirrored repositories.")
app.add_typer(group_app, name="group", help="Named sets of repositories.")
app.add_typer(config_app, name="config", help="User preferences (branch-prefix).")


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    json_output: bool = typer.Option(False, "--json", help="Print results and errors as JSON."),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)

    if json_output:
        os.environ[JSON_ENV] = "1"

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)


def main() -> None:
    app()
