"""Tyro CLI application entrypoint."""

from __future__ import annotations

from typing import Annotated

import tyro

from stereomux.cli import commands_convert, commands_inspect, commands_probe, commands_ui


TopLevelCommand = Annotated[
    commands_convert.ConvertCommand,
    tyro.conf.subcommand(name="convert"),
] | Annotated[
    commands_convert.RetryCommand,
    tyro.conf.subcommand(name="retry"),
] | Annotated[
    commands_probe.ProbeCommand,
    tyro.conf.subcommand(name="probe"),
] | Annotated[
    commands_inspect.InspectCommand,
    tyro.conf.subcommand(name="inspect"),
] | Annotated[
    commands_ui.UiCommand,
    tyro.conf.subcommand(name="ui"),
]


def dispatch(command: TopLevelCommand) -> int:
    """Dispatch parsed top-level command object and return its exit code."""

    if isinstance(command, commands_convert.ConvertCommand):
        return commands_convert.execute(command)
    if isinstance(command, commands_convert.RetryCommand):
        return commands_convert.execute_retry(command)
    if isinstance(command, commands_probe.ProbeCommand):
        return commands_probe.execute(command)
    if isinstance(command, commands_inspect.InspectCommand):
        return commands_inspect.execute(command)
    if isinstance(command, commands_ui.UiCommand):
        return commands_ui.execute(command)
    raise TypeError(f"Unsupported command type: {type(command).__name__}")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and run requested command."""

    command = tyro.cli(TopLevelCommand, args=argv)
    code = dispatch(command)
    if code:
        raise SystemExit(code)
