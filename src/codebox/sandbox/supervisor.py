"""Lifecycle supervisor — drives one environment from provisioning to teardown.

State machine per request::

    provisioning -> running -> {completed, timed_out, cancelled, failed} -> destroyed

While running, process exit races the profile timeout (and an optional
cancellation event).  The first to finish wins and the other waits are
cancelled; on timeout or cancellation the container is killed.  Whatever
happens, :meth:`Provisioner.destroy` runs exactly once before
:meth:`LifecycleSupervisor.supervise` returns.  If the caller is cancelled
during teardown, the shielded removal still runs to completion.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from codebox.errors import SandboxError
from codebox.sandbox.collector import StreamCollector
from codebox.sandbox.models import ExecutionOutcome, ExecutionState
from codebox.sandbox.packager import pack_source

if TYPE_CHECKING:
    from codebox.sandbox.languages import LanguageProfile
    from codebox.sandbox.provisioner import EnvironmentHandle, Provisioner

logger = logging.getLogger(__name__)


def elapsed_ms(started_at: float) -> int:
    """Milliseconds since *started_at* (a :func:`time.monotonic` reading)."""
    return int((time.monotonic() - started_at) * 1000)


async def race_exit(
    exit_waiter: asyncio.Future[int],
    timeout: float,
    cancel: asyncio.Event | None = None,
) -> tuple[ExecutionState, int | None]:
    """Race *exit_waiter* against *timeout* and *cancel*; first one wins.

    Losing waits are cancelled and awaited.  Only the waits are cancelled;
    stopping the process itself is the caller's job.  An exception raised
    by *exit_waiter* propagates.
    """
    contenders: set[asyncio.Future[Any]] = {exit_waiter}
    cancel_waiter: asyncio.Task[bool] | None = None
    if cancel is not None:
        cancel_waiter = asyncio.ensure_future(cancel.wait())
        contenders.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(contenders, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        losers = [c for c in contenders if not c.done()]
        for loser in losers:
            loser.cancel()
        await asyncio.gather(*losers, return_exceptions=True)

    if exit_waiter in done:
        return ExecutionState.COMPLETED, exit_waiter.result()
    if cancel_waiter is not None and cancel_waiter in done:
        return ExecutionState.CANCELLED, None
    return ExecutionState.TIMED_OUT, None


class LifecycleSupervisor:
    """Runs one request's environment and guarantees its destruction."""

    def __init__(
        self,
        provisioner: Provisioner,
        *,
        kill_grace: float = 5.0,
        drain_timeout: float = 5.0,
    ) -> None:
        self._provisioner = provisioner
        self._kill_grace = kill_grace
        self._drain_timeout = drain_timeout

    async def supervise(
        self,
        profile: LanguageProfile,
        source: str | bytes,
        *,
        correlation_id: str = "",
        started_at: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ExecutionOutcome:
        """Provision, run and tear down one environment for *source*."""
        if started_at is None:
            started_at = time.monotonic()

        handle = self._provisioner.reserve(profile, correlation_id)
        collector = StreamCollector()
        reader: asyncio.Task[None] | None = None

        try:
            archive = pack_source(profile.source_filename, source)
            await self._provisioner.provision(profile, archive, handle)
            await self._provisioner.start(handle)
            self._transition(handle, ExecutionState.RUNNING)
            reader = asyncio.create_task(collector.consume(self._provisioner.attach(handle)))

            state, exit_code = await race_exit(
                asyncio.ensure_future(self._provisioner.wait(handle)),
                profile.timeout,
                cancel,
            )
            finished_ms = elapsed_ms(started_at)
            self._transition(handle, state)

            if state is ExecutionState.COMPLETED:
                await self._drain(reader, handle)
            else:
                await self._kill(handle)
                reader.cancel()

            stdout, stderr = collector.render()
            return ExecutionOutcome(
                state=state,
                elapsed_ms=finished_ms,
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
            )
        except SandboxError as exc:
            self._transition(handle, ExecutionState.FAILED)
            logger.warning("Execution %s failed: %s", handle.name, exc)
            return ExecutionOutcome(
                state=ExecutionState.FAILED,
                elapsed_ms=elapsed_ms(started_at),
                error=exc.detail or str(exc),
            )
        finally:
            try:
                await self._stop_reader(reader, handle)
            finally:
                # Shielded so a cancelled caller cannot interrupt the removal.
                await asyncio.shield(self._provisioner.destroy(handle))

    async def _drain(self, reader: asyncio.Task[None], handle: EnvironmentHandle) -> None:
        """Let the output reader reach end of stream after the process exited."""
        try:
            await asyncio.wait_for(asyncio.shield(reader), timeout=self._drain_timeout)
        except TimeoutError:
            logger.warning("Output of %s not fully drained after %.1fs", handle.name, self._drain_timeout)
        except Exception as exc:
            logger.warning("Output stream of %s broke: %s", handle.name, exc)

    @staticmethod
    async def _stop_reader(reader: asyncio.Task[None] | None, handle: EnvironmentHandle) -> None:
        if reader is None:
            return
        if not reader.done():
            reader.cancel()
        (result,) = await asyncio.gather(reader, return_exceptions=True)
        if isinstance(result, Exception):
            logger.debug("Output reader of %s ended with %r", handle.name, result)

    async def _kill(self, handle: EnvironmentHandle) -> None:
        """Best-effort kill, bounded by the grace period and never re-armed."""
        try:
            await asyncio.wait_for(self._provisioner.terminate(handle), timeout=self._kill_grace)
        except TimeoutError:
            logger.warning("Kill of %s did not finish within %.1fs", handle.name, self._kill_grace)
        except Exception as exc:
            logger.warning("Kill of %s failed: %s", handle.name, exc)

    @staticmethod
    def _transition(handle: EnvironmentHandle, state: ExecutionState) -> None:
        logger.debug("%s [%s]: %s -> %s", handle.name, handle.correlation_id, handle.state.value, state.value)
        handle.state = state
