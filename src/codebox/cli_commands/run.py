"""``codebox run`` — execute a source file in a sandbox."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.markup import escape

from codebox.cli_commands._output import configure_logging, console, print_result, settings_or_exit
from codebox.sandbox.languages import EXTENSIONS

if TYPE_CHECKING:
    from codebox.sandbox.models import ExecutionResult


@click.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--language", "-l", default=None, help="Language id (inferred from the extension if omitted).")
@click.option("--session", "-s", default="cli", help="Correlation id recorded in logs.")
@click.option("--config", "-c", type=click.Path(exists=True), default=None, help="Settings YAML file.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def run(
    source: str,
    language: str | None,
    session: str,
    config: str | None,
    as_json: bool,
    verbose: bool,
) -> None:
    """Execute the SOURCE file in a throwaway container."""
    from codebox.errors import BackendUnavailableError, UnsupportedLanguageError
    from codebox.executor import CodeExecutor
    from codebox.sandbox.docker_client import DockerClient
    from codebox.utils.telemetry import configure_from_settings

    configure_logging(verbose)
    settings = settings_or_exit(config)
    settings = settings.model_copy(update={"warmup": False})
    configure_from_settings(settings.telemetry)

    path = Path(source)
    language = language or EXTENSIONS.get(path.suffix.lower())
    if language is None:
        console.print(f"[red]Cannot infer language from {path.name}; pass --language.[/red]")
        sys.exit(2)

    code = path.read_text(encoding="utf-8")

    async def _run() -> ExecutionResult:
        async with DockerClient(
            settings.docker_host,
            api_version=settings.api_version,
            timeout=settings.request_timeout,
        ) as docker:
            executor = CodeExecutor(docker, settings=settings)
            await executor.initialize()
            return await executor.run(code, language, session)

    try:
        result = asyncio.run(_run())
    except UnsupportedLanguageError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        sys.exit(2)
    except BackendUnavailableError as exc:
        console.print(f"[red]Backend error:[/red] {escape(str(exc))}")
        sys.exit(1)

    print_result(result, as_json=as_json)
    if not result.success:
        sys.exit(1)
