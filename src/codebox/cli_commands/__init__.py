"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from codebox.cli_commands.backend import check, pull
    from codebox.cli_commands.languages import languages
    from codebox.cli_commands.run import run

    cli.add_command(run)
    cli.add_command(languages)
    cli.add_command(check)
    cli.add_command(pull)
