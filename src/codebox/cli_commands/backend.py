"""``codebox check`` / ``codebox pull`` — inspect and prepare the Docker backend."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.markup import escape

from codebox.cli_commands._output import configure_logging, console, settings_or_exit


@click.command()
@click.option("--config", "-c", type=click.Path(exists=True), default=None, help="Settings YAML file.")
def check(config: str | None) -> None:
    """Check that the Docker daemon is reachable."""
    from codebox.sandbox.docker_client import DockerClient

    settings = settings_or_exit(config)

    async def _ping() -> bool:
        async with DockerClient(settings.docker_host, api_version=settings.api_version) as docker:
            return await docker.ping()

    if asyncio.run(_ping()):
        console.print(f"[green]Docker is available[/green] at {settings.docker_host}")
    else:
        console.print(f"[red]Docker is not available[/red] at {settings.docker_host}")
        sys.exit(1)


@click.command()
@click.argument("language_ids", nargs=-1)
@click.option("--config", "-c", type=click.Path(exists=True), default=None, help="Settings YAML file.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def pull(language_ids: tuple[str, ...], config: str | None, verbose: bool) -> None:
    """Pull the images for LANGUAGE_IDS (all languages if none are given)."""
    from codebox.errors import UnsupportedLanguageError
    from codebox.sandbox.docker_client import DockerClient
    from codebox.warmup import ImageWarmer

    configure_logging(verbose)
    settings = settings_or_exit(config)
    registry = settings.build_registry()

    try:
        profiles = [registry.resolve(lang) for lang in language_ids] or registry.profiles()
    except UnsupportedLanguageError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        sys.exit(2)

    images = [p.image for p in profiles]
    console.print(f"Pulling {len(set(images))} image(s)...")

    async def _pull() -> ImageWarmer:
        async with DockerClient(settings.docker_host, api_version=settings.api_version) as docker:
            warmer = ImageWarmer(docker, images)
            warmer.start()
            await warmer.wait()
            return warmer

    warmer = asyncio.run(_pull())

    for image in warmer.pulled:
        console.print(f"  [green]pulled[/green] {image}")
    for failure in warmer.failures:
        console.print(f"  [red]failed[/red] {failure.image}: {escape(failure.error)}")
    if warmer.failures:
        sys.exit(1)
