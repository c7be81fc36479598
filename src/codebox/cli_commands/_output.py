"""Shared CLI output helpers."""

from __future__ import annotations

import json
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from codebox.config import ExecutorSettings, load_settings
from codebox.errors import ConfigError
from codebox.sandbox.languages import LanguageProfile  # noqa: TC001
from codebox.sandbox.models import ExecutionResult  # noqa: TC001

console = Console()


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich at DEBUG level when *verbose*."""
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def settings_or_exit(config: str | None) -> ExecutorSettings:
    """Load settings from *config*, printing the error and exiting on failure."""
    try:
        return load_settings(config)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        sys.exit(1)


def print_result(result: ExecutionResult, *, as_json: bool = False) -> None:
    """Pretty-print an execution result."""
    if as_json:
        click.echo(json.dumps(result.to_wire(), indent=2))
        return

    status = "[green]success[/green]" if result.success else "[red]failed[/red]"
    console.print(
        f"{status}  language={result.language}  exit={result.exit_code}  "
        f"time={result.execution_time_ms}ms"
    )
    if result.output is not None:
        console.print(Panel(Text(result.output), title="output", title_align="left", expand=False))
    if result.error is not None:
        console.print(
            Panel(Text(result.error), title="error", title_align="left", border_style="red", expand=False)
        )


def print_languages_table(profiles: list[LanguageProfile]) -> None:
    """Pretty-print language profiles as a table."""
    table = Table(title="Languages")
    table.add_column("Language", style="cyan")
    table.add_column("Image")
    table.add_column("Command")
    table.add_column("File")
    table.add_column("Timeout", justify="right")

    for profile in profiles:
        table.add_row(
            profile.id,
            profile.image,
            _truncate(" ".join(profile.render_command())),
            profile.source_filename,
            f"{profile.timeout:g}s",
        )

    console.print(table)


def _truncate(text: str, max_len: int = 60) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
