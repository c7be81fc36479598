"""Environment provisioner — creates, starts and destroys execution containers.

Each request gets one :class:`EnvironmentHandle`.  The handle is reserved
(named) before any I/O happens, so :meth:`Provisioner.destroy` can reclaim
the container by name even when the create call failed after the daemon
had already made it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from codebox.errors import ProvisioningError, SandboxError
from codebox.sandbox.models import ExecutionState

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from codebox.config import ExecutorSettings
    from codebox.sandbox.docker_client import DockerClient
    from codebox.sandbox.languages import LanguageProfile

logger = logging.getLogger(__name__)

LABEL_LANGUAGE = "codebox.language"
LABEL_CORRELATION_ID = "codebox.correlation-id"


@dataclass
class EnvironmentHandle:
    """Opaque reference to one ephemeral container, owned by one request."""

    name: str
    language: str
    correlation_id: str = ""
    container_id: str | None = None
    state: ExecutionState = ExecutionState.PROVISIONING
    destroyed: bool = False
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def ref(self) -> str:
        """Container id if known, else the reserved name."""
        return self.container_id or self.name


class Provisioner:
    """Creates resource-capped, network-isolated containers from language profiles."""

    def __init__(self, docker: DockerClient, settings: ExecutorSettings) -> None:
        self._docker = docker
        self._settings = settings

    def reserve(self, profile: LanguageProfile, correlation_id: str = "") -> EnvironmentHandle:
        """Allocate a uniquely named handle; no backend call is made."""
        name = f"{self._settings.container_prefix}-{uuid.uuid4().hex}"
        return EnvironmentHandle(
            name=name,
            language=profile.id,
            correlation_id=correlation_id,
            labels={LABEL_LANGUAGE: profile.id, LABEL_CORRELATION_ID: correlation_id},
        )

    def build_create_body(self, profile: LanguageProfile, handle: EnvironmentHandle) -> dict[str, Any]:
        """Build the ``/containers/create`` body with resource limits."""
        cfg = self._settings
        host_config: dict[str, Any] = {
            "NetworkMode": "none",
            "Memory": cfg.memory_limit,
            "MemorySwap": cfg.memory_limit,
            "AutoRemove": False,
            "ReadonlyRootfs": False,
            "Tmpfs": {"/tmp": f"rw,size={cfg.tmpfs_size},mode=1777"},
            "LogConfig": {"Type": "json-file", "Config": {}},
        }
        if cfg.cpu_quota:
            host_config["CpuQuota"] = cfg.cpu_quota
            host_config["CpuPeriod"] = cfg.cpu_period
        if cfg.pids_limit:
            host_config["PidsLimit"] = cfg.pids_limit

        return {
            "Image": profile.image,
            "Cmd": profile.render_command(),
            "WorkingDir": cfg.workdir,
            "AttachStdin": False,
            "AttachStdout": True,
            "AttachStderr": True,
            "Tty": False,
            "OpenStdin": False,
            "NetworkDisabled": True,
            "Labels": dict(handle.labels),
            "HostConfig": host_config,
        }

    async def provision(
        self,
        profile: LanguageProfile,
        archive: bytes,
        handle: EnvironmentHandle,
    ) -> EnvironmentHandle:
        """Create the container and inject *archive* into the working directory."""
        try:
            handle.container_id = await self._docker.create_container(
                handle.name, self.build_create_body(profile, handle)
            )
        except SandboxError as exc:
            raise ProvisioningError(
                f"cannot create {profile.id} environment from {profile.image}: {exc.detail}"
            ) from exc
        logger.debug("Created %s (%s) for %s", handle.name, handle.container_id, handle.correlation_id)

        try:
            await self._docker.put_archive(handle.ref, archive, self._settings.workdir)
        except SandboxError as exc:
            raise ProvisioningError(f"cannot inject source into {handle.name}: {exc.detail}") from exc
        return handle

    async def start(self, handle: EnvironmentHandle) -> None:
        try:
            await self._docker.start(handle.ref)
        except SandboxError as exc:
            raise ProvisioningError(f"cannot start {handle.name}: {exc.detail}") from exc

    def attach(self, handle: EnvironmentHandle) -> AsyncIterator[bytes]:
        """Return the live multiplexed output stream of the container."""
        return self._docker.stream_output(handle.ref)

    async def wait(self, handle: EnvironmentHandle) -> int:
        return await self._docker.wait(handle.ref)

    async def terminate(self, handle: EnvironmentHandle) -> None:
        await self._docker.kill(handle.ref)

    async def destroy(self, handle: EnvironmentHandle) -> None:
        """Force-remove the container.

        Idempotent and never raises for backend failures: those are logged
        so the caller's own cleanup and result always complete.
        """
        if handle.destroyed:
            return
        handle.destroyed = True
        try:
            removed = await self._docker.remove(handle.ref, force=True)
        except SandboxError as exc:
            logger.warning("Cleanup of %s failed: %s", handle.name, exc)
        except Exception:
            logger.exception("Cleanup of %s failed", handle.name)
        else:
            if not removed:
                logger.debug("Container %s was already gone", handle.name)
        handle.state = ExecutionState.DESTROYED
