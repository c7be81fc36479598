"""DockerClient — async access to the Docker Engine HTTP API.

Talks to the daemon over its unix socket (or a ``tcp://`` address) with
:mod:`httpx`, the same client library used for the other HTTP integrations.
Only the handful of endpoints the orchestrator needs are wrapped.

Usage::

    async with DockerClient("unix:///var/run/docker.sock") as docker:
        container_id = await docker.create_container("box-1", body)
        await docker.start(container_id)
        exit_code = await docker.wait(container_id)
        await docker.remove(container_id)

A single client is shared by every in-flight request; each request works on
its own uniquely named container, so no locking is needed here.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from codebox.errors import BackendUnavailableError, DockerAPIError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"
DEFAULT_API_VERSION = "v1.43"

# Long-polling endpoints (wait, log follow, image pull) must not time out on reads.
_STREAM_TIMEOUT = httpx.Timeout(10.0, read=None)


def split_image_ref(image: str) -> tuple[str, str]:
    """Split ``name[:tag]`` into ``(name, tag)``; the tag defaults to ``latest``.

    A colon inside the registry host (``host:5000/name``) is not a tag
    separator.
    """
    if "@" in image:
        name, digest = image.split("@", 1)
        return name, digest
    name, sep, tag = image.rpartition(":")
    if not sep or "/" in tag:
        return image, "latest"
    return name, tag


class DockerClient:
    """Minimal async Docker Engine API client.

    Transport failures raise :class:`BackendUnavailableError`; error
    responses raise :class:`DockerAPIError`.
    """

    def __init__(
        self,
        host: str = DEFAULT_DOCKER_HOST,
        *,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._host = host
        self._api_version = api_version
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def host(self) -> str:
        return self._host

    async def __aenter__(self) -> DockerClient:
        await self.open()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def open(self) -> None:
        """Create the underlying HTTP client (idempotent)."""
        if self._client is not None:
            return
        transport = self._transport
        if self._host.startswith("unix://"):
            base_url = "http://docker"
            if transport is None:
                transport = httpx.AsyncHTTPTransport(uds=self._host.removeprefix("unix://"))
        elif self._host.startswith("tcp://"):
            base_url = "http://" + self._host.removeprefix("tcp://")
        else:
            base_url = self._host
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/{self._api_version}",
            transport=transport,
            timeout=self._timeout,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "DockerClient must be opened (use it as an async context manager)"
            raise RuntimeError(msg)
        return self._client

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        """Return ``True`` if the daemon answers ``/_ping``."""
        try:
            response = await self._http().get("/_ping")
        except httpx.HTTPError as exc:
            logger.debug("Docker ping failed: %s", exc)
            return False
        return response.status_code == 200

    async def create_container(self, name: str, body: dict[str, Any]) -> str:
        """``POST /containers/create`` and return the new container id."""
        response = await self._request("POST", "/containers/create", params={"name": name}, json=body)
        data = response.json()
        for warning in data.get("Warnings") or []:
            logger.warning("Docker warning for %s: %s", name, warning)
        return str(data["Id"])

    async def put_archive(self, ref: str, data: bytes, path: str) -> None:
        """Extract a tar archive into *path* inside the container."""
        await self._request(
            "PUT",
            f"/containers/{ref}/archive",
            params={"path": path},
            content=data,
            headers={"Content-Type": "application/x-tar"},
        )

    async def start(self, ref: str) -> None:
        await self._request("POST", f"/containers/{ref}/start", allowed={304})

    async def wait(self, ref: str) -> int:
        """Block until the container stops and return its exit code."""
        response = await self._request("POST", f"/containers/{ref}/wait", timeout=_STREAM_TIMEOUT)
        data = response.json()
        error = data.get("Error") or {}
        if error.get("Message"):
            raise DockerAPIError(response.status_code, error["Message"])
        return int(data.get("StatusCode", -1))

    async def kill(self, ref: str, signal: str = "SIGKILL") -> None:
        """Send *signal*; a container that is not running (409) is ignored."""
        await self._request("POST", f"/containers/{ref}/kill", params={"signal": signal}, allowed={409})

    async def remove(self, ref: str, *, force: bool = True) -> bool:
        """Delete the container; return ``False`` if it was already gone."""
        response = await self._request(
            "DELETE",
            f"/containers/{ref}",
            params={"force": str(force).lower(), "v": "true"},
            allowed={404, 409},
        )
        if response.status_code == 409:
            # Removal already in progress.
            return False
        return response.status_code != 404

    async def stream_output(self, ref: str) -> AsyncIterator[bytes]:
        """Yield the raw multiplexed stdout/stderr stream until the container exits.

        Follows the container log rather than a hijacked attach connection;
        the ``json-file`` driver buffers everything the process writes, so
        the process never blocks on an unread pipe and nothing written
        before the stream opens is lost.
        """
        params = {"follow": "true", "stdout": "true", "stderr": "true"}
        try:
            async with self._http().stream(
                "GET", f"/containers/{ref}/logs", params=params, timeout=_STREAM_TIMEOUT
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise DockerAPIError(response.status_code, _error_message(response))
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            raise BackendUnavailableError(str(exc)) from exc

    async def pull_image(self, image: str) -> None:
        """Pull *image*, consuming the progress stream.

        The daemon reports pull failures inside a 200 response as a JSON
        line carrying an ``error`` key.
        """
        name, tag = split_image_ref(image)
        params = {"fromImage": name, "tag": tag}
        try:
            async with self._http().stream(
                "POST", "/images/create", params=params, timeout=_STREAM_TIMEOUT
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise DockerAPIError(response.status_code, _error_message(response))
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        event = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if event.get("error"):
                        raise DockerAPIError(response.status_code, str(event["error"]))
        except httpx.HTTPError as exc:
            raise BackendUnavailableError(str(exc)) from exc

    async def _request(
        self,
        method: str,
        url: str,
        *,
        allowed: set[int] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await self._http().request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise BackendUnavailableError(str(exc)) from exc

        if response.status_code >= 400 and response.status_code not in (allowed or set()):
            raise DockerAPIError(response.status_code, _error_message(response))
        return response


def _error_message(response: httpx.Response) -> str:
    """Extract the daemon's ``{"message": ...}`` body, falling back to raw text."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(data, dict) and "message" in data:
        return str(data["message"])
    return response.text.strip()
