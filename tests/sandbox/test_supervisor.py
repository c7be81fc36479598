"""Tests for the lifecycle supervisor: timeout race and guaranteed cleanup."""

import asyncio
import time
from collections.abc import AsyncIterator
from unittest.mock import patch

import pytest

from codebox.config import ExecutorSettings
from codebox.errors import BackendUnavailableError, DockerAPIError
from codebox.sandbox.collector import STDERR, STDOUT, encode_frame
from codebox.sandbox.languages import LanguageProfile
from codebox.sandbox.models import ExecutionState
from codebox.sandbox.provisioner import Provisioner
from codebox.sandbox.supervisor import LifecycleSupervisor, race_exit
from tests.fakes import FakeDocker, FakeProgram

NODE = LanguageProfile(
    id="javascript",
    image="node:18-alpine",
    run_command=("node", "{source}"),
    source_filename="code.js",
    timeout_ms=100,
)


def _supervisor(docker: FakeDocker, **kwargs: float) -> tuple[LifecycleSupervisor, Provisioner]:
    provisioner = Provisioner(docker, ExecutorSettings())  # type: ignore[arg-type]
    return LifecycleSupervisor(provisioner, **kwargs), provisioner


class TestRaceExit:
    async def test_exit_first(self) -> None:
        waiter = asyncio.ensure_future(asyncio.sleep(0, result=7))
        assert await race_exit(waiter, 1.0) == (ExecutionState.COMPLETED, 7)

    async def test_timeout_first_cancels_wait(self) -> None:
        waiter = asyncio.ensure_future(asyncio.sleep(10, result=0))
        assert await race_exit(waiter, 0.01) == (ExecutionState.TIMED_OUT, None)
        assert waiter.cancelled()

    async def test_cancel_first(self) -> None:
        cancel = asyncio.Event()
        cancel.set()
        waiter = asyncio.ensure_future(asyncio.sleep(10, result=0))
        assert await race_exit(waiter, 5.0, cancel) == (ExecutionState.CANCELLED, None)
        assert waiter.cancelled()

    async def test_wait_error_propagates(self) -> None:
        async def broken() -> int:
            raise DockerAPIError(500, "gone")

        with pytest.raises(DockerAPIError):
            await race_exit(asyncio.ensure_future(broken()), 1.0)


class TestSupervise:
    async def test_completed_collects_both_streams(self) -> None:
        docker = FakeDocker()
        supervisor, _ = _supervisor(docker)

        outcome = await supervisor.supervise(
            NODE, 'console.log("hi")\nconsole.error("careful")', correlation_id="s1"
        )

        assert outcome.state is ExecutionState.COMPLETED
        assert outcome.exit_code == 0
        assert outcome.stdout == "hi"
        assert outcome.stderr == "careful"
        assert docker.count("remove") == 1
        assert docker.containers == {}

    async def test_nonzero_exit(self) -> None:
        docker = FakeDocker()
        supervisor, _ = _supervisor(docker)

        outcome = await supervisor.supervise(NODE, 'throw new Error("bad")')

        assert outcome.state is ExecutionState.COMPLETED
        assert outcome.exit_code == 1
        assert outcome.stderr == "Error: bad"

    async def test_timeout_kills_and_destroys(self) -> None:
        docker = FakeDocker()
        supervisor, _ = _supervisor(docker)

        began = time.monotonic()
        outcome = await supervisor.supervise(NODE, "sleep(10)", started_at=began)
        wall = time.monotonic() - began

        assert outcome.state is ExecutionState.TIMED_OUT
        assert outcome.exit_code is None
        assert 100 <= outcome.elapsed_ms < 1000
        assert wall < 2.0
        assert docker.count("kill") == 1
        assert docker.count("remove") == 1

    async def test_timeout_survives_failing_kill(self) -> None:
        docker = FakeDocker(fail_on={"kill": DockerAPIError(500, "kill failed")})
        supervisor, _ = _supervisor(docker)

        outcome = await supervisor.supervise(NODE, "sleep(10)")

        assert outcome.state is ExecutionState.TIMED_OUT
        assert docker.count("remove") == 1

    async def test_cancellation_kills_container(self) -> None:
        docker = FakeDocker()
        supervisor, _ = _supervisor(docker)
        profile = NODE.model_copy(update={"timeout_ms": 5000})
        cancel = asyncio.Event()

        async def stop_soon() -> None:
            await asyncio.sleep(0.05)
            cancel.set()

        stopper = asyncio.create_task(stop_soon())
        outcome = await supervisor.supervise(profile, "sleep(10)", cancel=cancel)
        await stopper

        assert outcome.state is ExecutionState.CANCELLED
        assert outcome.elapsed_ms < 1000
        assert docker.count("kill") == 1
        assert docker.count("remove") == 1

    async def test_provisioning_failure(self) -> None:
        docker = FakeDocker(fail_on={"create": DockerAPIError(404, "No such image: node:18-alpine")})
        supervisor, _ = _supervisor(docker)

        outcome = await supervisor.supervise(NODE, 'console.log("hi")')

        assert outcome.state is ExecutionState.FAILED
        assert outcome.error is not None
        assert "No such image" in outcome.error

    async def test_interleaved_output_split_into_tiny_chunks(self) -> None:
        frames = []
        for i in range(20):
            frames.append((STDOUT, f"o{i}\n".encode()))
            frames.append((STDERR, f"e{i}\n".encode()))
        docker = FakeDocker(lambda image, source: FakeProgram(frames=frames, chunk_size=3))
        supervisor, _ = _supervisor(docker)

        outcome = await supervisor.supervise(NODE, "anything")

        assert outcome.stdout == "\n".join(f"o{i}" for i in range(20))
        assert outcome.stderr == "\n".join(f"e{i}" for i in range(20))

    @pytest.mark.parametrize(
        ("stage", "source", "expected_state"),
        [
            ("create", 'console.log("hi")', ExecutionState.FAILED),
            ("put_archive", 'console.log("hi")', ExecutionState.FAILED),
            ("start", 'console.log("hi")', ExecutionState.FAILED),
            ("wait", 'console.log("hi")', ExecutionState.FAILED),
            ("remove", 'console.log("hi")', ExecutionState.COMPLETED),
            ("stream_output", 'console.log("hi")', ExecutionState.COMPLETED),
            (None, 'console.log("hi")', ExecutionState.COMPLETED),
            (None, "sleep(10)", ExecutionState.TIMED_OUT),
        ],
    )
    async def test_destroy_exactly_once_on_every_path(
        self, stage: str | None, source: str, expected_state: ExecutionState
    ) -> None:
        faults = {stage: BackendUnavailableError(f"{stage} fault")} if stage else {}
        docker = FakeDocker(fail_on=faults)
        supervisor, provisioner = _supervisor(docker)

        with patch.object(provisioner, "destroy", wraps=provisioner.destroy) as destroy:
            outcome = await supervisor.supervise(NODE, source)

        assert outcome.state is expected_state
        assert destroy.await_count == 1
        assert docker.count("remove") == 1

    @pytest.mark.parametrize("stage", ["create", "put_archive", "start", "wait"])
    async def test_unexpected_fault_still_destroys(self, stage: str) -> None:
        docker = FakeDocker(fail_on={stage: RuntimeError(f"{stage} blew up")})
        supervisor, provisioner = _supervisor(docker)

        with patch.object(provisioner, "destroy", wraps=provisioner.destroy) as destroy:
            with pytest.raises(RuntimeError, match="blew up"):
                await supervisor.supervise(NODE, 'console.log("hi")')

        assert destroy.await_count == 1
        assert docker.count("remove") == 1
        assert docker.containers == {}

    @pytest.mark.parametrize(
        ("stage", "source", "expected_state"),
        [
            ("stream_output", 'console.log("hi")', ExecutionState.COMPLETED),
            ("remove", 'console.log("hi")', ExecutionState.COMPLETED),
            ("kill", "sleep(10)", ExecutionState.TIMED_OUT),
        ],
    )
    async def test_unexpected_fault_outside_the_run_is_contained(
        self, stage: str, source: str, expected_state: ExecutionState
    ) -> None:
        docker = FakeDocker(fail_on={stage: RuntimeError(f"{stage} blew up")})
        supervisor, provisioner = _supervisor(docker)

        with patch.object(provisioner, "destroy", wraps=provisioner.destroy) as destroy:
            outcome = await supervisor.supervise(NODE, source)

        assert outcome.state is expected_state
        assert destroy.await_count == 1
        assert docker.count("remove") == 1

    async def test_broken_output_stream_keeps_exit_code(self) -> None:
        class BrokenStreamDocker(FakeDocker):
            async def stream_output(self, ref: str) -> AsyncIterator[bytes]:
                yield encode_frame(STDOUT, b"partial\n")
                raise RuntimeError("stream closed")

        docker = BrokenStreamDocker()
        supervisor, _ = _supervisor(docker)

        outcome = await supervisor.supervise(NODE, 'console.log("hi")')

        assert outcome.state is ExecutionState.COMPLETED
        assert outcome.exit_code == 0
        assert outcome.stdout == "partial"
        assert docker.count("remove") == 1
        assert docker.containers == {}

    async def test_removal_completes_when_caller_cancelled_during_teardown(self) -> None:
        class SlowRemoveDocker(FakeDocker):
            def __init__(self) -> None:
                super().__init__()
                self.removing = asyncio.Event()

            async def remove(self, ref: str, *, force: bool = True) -> bool:
                self.removing.set()
                await asyncio.sleep(0.05)
                return await super().remove(ref, force=force)

        docker = SlowRemoveDocker()
        supervisor, _ = _supervisor(docker)

        task = asyncio.create_task(supervisor.supervise(NODE, 'console.log("hi")'))
        await docker.removing.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.2)
        assert docker.count("remove") == 1
        assert docker.containers == {}

    async def test_destroy_runs_when_caller_is_cancelled(self) -> None:
        docker = FakeDocker()
        supervisor, _ = _supervisor(docker)
        profile = NODE.model_copy(update={"timeout_ms": 10_000})

        task = asyncio.create_task(supervisor.supervise(profile, "sleep(10)"))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert docker.count("remove") == 1
        assert docker.containers == {}
