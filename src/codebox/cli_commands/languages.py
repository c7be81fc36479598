"""``codebox languages`` — list the configured language profiles."""

from __future__ import annotations

import click

from codebox.cli_commands._output import print_languages_table, settings_or_exit


@click.command()
@click.option("--config", "-c", type=click.Path(exists=True), default=None, help="Settings YAML file.")
def languages(config: str | None) -> None:
    """List supported languages with their images and commands."""
    settings = settings_or_exit(config)
    print_languages_table(settings.build_registry().profiles())
