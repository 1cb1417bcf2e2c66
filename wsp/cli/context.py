from __future__ import annotations

import os
from dataclasses import dataclass

import typer

from wsp.core.config import Paths
from wsp.core.errors import ErrorCode
from wsp.core.registry import Registry, load_registry, save_registry
from wsp.core.result import Err
from wsp.output.console import ConsoleProtocol, RichConsole
from wsp.output.render import dump_json, error_to_dict, print_error

JSON_ENV = "WSP_JSON"


def json_enabled() -> bool:
    return os.environ.get(JSON_ENV, "") == "1"


@dataclass(frozen=True, slots=True)
class CLIContext:
    paths: Paths
    registry: Registry
    console: ConsoleProtocol
    json_output: bool = False

    def save_registry(self) -> None:
        saved = save_registry(self.paths.registry_path, self.registry)
        if isinstance(saved, Err):
            if self.json_output:
                typer.echo(dump_json({"ok": False, "error": error_to_dict(saved.error)}))
            else:
                print_error(saved.error, self.console)
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))


def build_context() -> CLIContext:
    json_output = json_enabled()
    console = RichConsole(quiet=json_output)
    paths = Paths.from_env()

    registry_result = load_registry(paths.registry_path)
    if isinstance(registry_result, Err):
        if json_output:
            typer.echo(dump_json({"ok": False, "error": error_to_dict(registry_result.error)}))
        else:
            print_error(registry_result.error, console)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(
        paths=paths,
        registry=registry_result.value,
        console=console,
        json_output=json_output,
    )
