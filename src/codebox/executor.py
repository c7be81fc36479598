"""CodeExecutor — the entry point that turns a request into a result.

Wires the language registry, the provisioner, the lifecycle supervisor and
the result normalizer together.  All collaborators are passed in (or built
from :class:`~codebox.config.ExecutorSettings`); nothing is module-global.
The Docker client is process-wide and shared; everything else a request
touches is created per request.

Usage::

    settings = load_settings("codebox.yaml")
    async with DockerClient(settings.docker_host) as docker:
        executor = CodeExecutor(docker, settings=settings)
        await executor.initialize()
        result = await executor.run('console.log("hi")', "javascript", "session-1")
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from codebox.config import ExecutorSettings
from codebox.errors import BackendUnavailableError
from codebox.sandbox.models import ExecutionOutcome, ExecutionRequest, ExecutionResult, ExecutionState
from codebox.sandbox.normalizer import normalize
from codebox.sandbox.provisioner import Provisioner
from codebox.sandbox.supervisor import LifecycleSupervisor, elapsed_ms
from codebox.store import ExecutionRecord
from codebox.utils.telemetry import (
    ATTR_CORRELATION_ID,
    ATTR_DURATION_MS,
    ATTR_EXIT_CODE,
    ATTR_IMAGE,
    ATTR_LANGUAGE,
    ATTR_STATE,
    get_tracer,
)
from codebox.warmup import ImageWarmer

if TYPE_CHECKING:
    from codebox.sandbox.docker_client import DockerClient
    from codebox.sandbox.languages import LanguageRegistry
    from codebox.store import ExecutionStore
    from codebox.warmup import WarmupFailure

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


class CodeExecutor:
    """Runs submitted source code in ephemeral sandboxed containers."""

    def __init__(
        self,
        docker: DockerClient,
        *,
        registry: LanguageRegistry | None = None,
        settings: ExecutorSettings | None = None,
        store: ExecutionStore | None = None,
    ) -> None:
        self._docker = docker
        self._settings = settings or ExecutorSettings()
        self._registry = registry or self._settings.build_registry()
        self._store = store
        self._provisioner = Provisioner(docker, self._settings)
        self._supervisor = LifecycleSupervisor(
            self._provisioner,
            kill_grace=self._settings.kill_grace,
            drain_timeout=self._settings.drain_timeout,
        )
        self._warmer: ImageWarmer | None = None

    @property
    def registry(self) -> LanguageRegistry:
        return self._registry

    @property
    def warmer(self) -> ImageWarmer | None:
        return self._warmer

    def supported_languages(self) -> list[str]:
        return self._registry.languages()

    async def initialize(self) -> None:
        """Check the backend and kick off image warm-up in the background.

        Raises:
            BackendUnavailableError: If the Docker daemon does not answer.
        """
        if not await self._docker.ping():
            raise BackendUnavailableError(
                f"Docker is required for code execution but is not available at {self._settings.docker_host}"
            )
        logger.info("Docker is available at %s", self._settings.docker_host)

        if self._settings.warmup and self._warmer is None:
            self._warmer = ImageWarmer(
                self._docker,
                [p.image for p in self._registry.profiles()],
                on_failure=self._on_warmup_failure,
            )
            self._warmer.start()

    async def close(self) -> None:
        if self._warmer is not None:
            await self._warmer.stop()

    async def run(
        self,
        code: str,
        language: str,
        correlation_id: str = "",
        *,
        cancel: asyncio.Event | None = None,
    ) -> ExecutionResult:
        """Convenience wrapper around :meth:`execute`."""
        request = ExecutionRequest(code=code, language=language, correlation_id=correlation_id)
        return await self.execute(request, cancel=cancel)

    async def execute(
        self,
        request: ExecutionRequest,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ExecutionResult:
        """Run *request* and return its normalized result.

        Setting *cancel* while the program runs kills its container and
        yields a ``cancelled`` result.

        Raises:
            UnsupportedLanguageError: Before any container is created, if the
                language has no profile.  Every other failure is reported in
                the returned result.
        """
        profile = self._registry.resolve(request.language)
        started_at = time.monotonic()

        with _tracer.start_as_current_span("codebox.execute") as span:
            span.set_attribute(ATTR_LANGUAGE, profile.id)
            span.set_attribute(ATTR_IMAGE, profile.image)
            span.set_attribute(ATTR_CORRELATION_ID, request.correlation_id)

            logger.info(
                "Executing %s code for %s (%d chars)",
                profile.id,
                request.correlation_id or "-",
                len(request.code),
            )
            try:
                outcome = await self._supervisor.supervise(
                    profile,
                    request.code,
                    correlation_id=request.correlation_id,
                    started_at=started_at,
                    cancel=cancel,
                )
            except Exception as exc:
                logger.exception("Unexpected error executing %s code for %s", profile.id, request.correlation_id)
                outcome = ExecutionOutcome(
                    state=ExecutionState.FAILED,
                    elapsed_ms=elapsed_ms(started_at),
                    error=str(exc) or type(exc).__name__,
                )

            result = normalize(outcome, profile.id)
            span.set_attribute(ATTR_STATE, outcome.state.value)
            span.set_attribute(ATTR_EXIT_CODE, result.exit_code)
            span.set_attribute(ATTR_DURATION_MS, result.execution_time_ms)

        logger.info(
            "Execution for %s finished: %s (exit %d, %d ms)",
            request.correlation_id or "-",
            outcome.state.value,
            result.exit_code,
            result.execution_time_ms,
        )
        await self._log_execution(request, result)
        return result

    async def _log_execution(self, request: ExecutionRequest, result: ExecutionResult) -> None:
        if self._store is None:
            return
        try:
            await self._store.add(ExecutionRecord.from_result(request, result))
        except Exception:
            logger.exception("Failed to log execution for %s", request.correlation_id)

    @staticmethod
    def _on_warmup_failure(failure: WarmupFailure) -> None:
        logger.warning("Image %s unavailable; requests for it will fail until pulled", failure.image)
