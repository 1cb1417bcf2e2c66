"""`wsp config`: user preferences stored in the registry."""

from __future__ import annotations

import typer

from wsp.cli.commands._helpers import emit, fail
from wsp.cli.context import CLIContext, build_context
from wsp.core.errors import InvalidName
from wsp.output.console import Style

config_app = typer.Typer(add_completion=False, no_args_is_help=True)

KEYS = ("branch-prefix",)


def _check_key(key: str, ctx: CLIContext) -> None:
    if key not in KEYS:
        fail(InvalidName(name=key, reason=f"unknown config key (known: {', '.join(KEYS)})"), ctx)


@config_app.command("get")
def get(key: str = typer.Argument(..., help="Config key")) -> None:
    """Print a config value."""
    ctx = build_context()
    _check_key(key, ctx)
    value = ctx.registry.branch_prefix
    emit(ctx, {"key": key, "value": value})
    if not ctx.json_output:
        if value is None:
            ctx.console.print("(unset)", Style.DIM)
        else:
            typer.echo(value)


@config_app.command("set")
def set_(
    key: str = typer.Argument(..., help="Config key"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Set a config value."""
    ctx = build_context()
    _check_key(key, ctx)
    prefix = value.strip().strip("/")
    if not prefix or any(not part or part.startswith(".") for part in prefix.split("/")):
        fail(InvalidName(name=value, reason="not a valid branch prefix"), ctx)
    ctx.registry.branch_prefix = prefix
    ctx.save_registry()
    ctx.console.success(f"{key} = {prefix}")
    emit(ctx, {"key": key, "value": prefix})


@config_app.command("unset")
def unset(key: str = typer.Argument(..., help="Config key")) -> None:
    """Clear a config value."""
    ctx = build_context()
    _check_key(key, ctx)
    ctx.registry.branch_prefix = None
    ctx.save_registry()
    ctx.console.success(f"{key} unset")
    emit(ctx, {"key": key, "value": None})
