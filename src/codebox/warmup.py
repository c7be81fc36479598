"""ImageWarmer — pre-pulls language images as a supervised background task.

Pulling is slow and optional: the first request for a language whose image
is missing fails with a provisioning error instead of waiting.  The warmer
therefore runs next to request serving, never in front of it, and reports
its failures through :attr:`ImageWarmer.failures` (and an optional callback)
rather than raising.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from codebox.errors import SandboxError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from codebox.sandbox.docker_client import DockerClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WarmupFailure:
    """An image that could not be pulled."""

    image: str
    error: str


class ImageWarmer:
    """Pulls each distinct image once, sequentially, in the background."""

    def __init__(
        self,
        docker: DockerClient,
        images: Iterable[str],
        *,
        on_failure: Callable[[WarmupFailure], None] | None = None,
    ) -> None:
        self._docker = docker
        self._images = list(dict.fromkeys(images))
        self._on_failure = on_failure
        self._task: asyncio.Task[None] | None = None
        self.pulled: list[str] = []
        self.failures: list[WarmupFailure] = []

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Launch the pull task (idempotent) and return it without waiting."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="codebox-image-warmup")
        return self._task

    async def wait(self) -> None:
        """Wait for the pull task to finish."""
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        """Cancel an unfinished pull task."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.debug("Image warm-up cancelled")

    async def _run(self) -> None:
        logger.info("Pulling %d image(s) for code execution", len(self._images))
        for image in self._images:
            try:
                await self._docker.pull_image(image)
            except SandboxError as exc:
                self._record_failure(WarmupFailure(image=image, error=str(exc)))
            else:
                self.pulled.append(image)
                logger.info("Pulled %s", image)
        logger.info(
            "Image warm-up finished: %d pulled, %d failed", len(self.pulled), len(self.failures)
        )

    def _record_failure(self, failure: WarmupFailure) -> None:
        logger.error("Failed to pull %s: %s", failure.image, failure.error)
        self.failures.append(failure)
        if self._on_failure is not None:
            try:
                self._on_failure(failure)
            except Exception:
                logger.exception("Warm-up failure callback raised")
