"""Stream collector — demultiplexes a container's combined output stream.

Docker frames each chunk of a non-TTY container's output with an 8-byte
header::

    [stream_type, 0, 0, 0, size (uint32, big-endian)] + payload

``stream_type`` is 1 for stdout and 2 for stderr.  Frames arrive split
across, or packed inside, arbitrary transport chunks, so the parser is
incremental.
"""

from __future__ import annotations

import logging
import struct
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, Iterator

logger = logging.getLogger(__name__)

STDIN = 0
STDOUT = 1
STDERR = 2

_HEADER = struct.Struct(">BxxxL")


def encode_frame(stream: int, payload: bytes) -> bytes:
    """Build one frame (used by backends and tests that emit the format)."""
    return _HEADER.pack(stream, len(payload)) + payload


class FrameDemuxer:
    """Incremental parser turning byte chunks into ``(stream, payload)`` frames."""

    def __init__(self) -> None:
        self._pending = bytearray()

    def feed(self, chunk: bytes) -> Iterator[tuple[int, bytes]]:
        self._pending.extend(chunk)
        while len(self._pending) >= _HEADER.size:
            stream, size = _HEADER.unpack_from(self._pending)
            end = _HEADER.size + size
            if len(self._pending) < end:
                break
            payload = bytes(self._pending[_HEADER.size:end])
            del self._pending[:end]
            yield stream, payload

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete frame."""
        return len(self._pending)


class StreamCollector:
    """Accumulates stdout and stderr of one environment in separate buffers.

    Buffers grow without bound; the process's own output volume and the
    profile timeout are what limit them.
    """

    def __init__(self) -> None:
        self._demuxer = FrameDemuxer()
        self.stdout = bytearray()
        self.stderr = bytearray()

    def feed(self, chunk: bytes) -> None:
        for stream, payload in self._demuxer.feed(chunk):
            if stream == STDOUT:
                self.stdout.extend(payload)
            elif stream == STDERR:
                self.stderr.extend(payload)

    async def consume(self, stream: AsyncIterable[bytes]) -> None:
        """Read *stream* to the end, routing every frame to its buffer."""
        async for chunk in stream:
            self.feed(chunk)
        if self._demuxer.pending:
            logger.warning("Dropping %d bytes of truncated output frame", self._demuxer.pending)

    def render(self) -> tuple[str, str]:
        """Return ``(stdout, stderr)`` decoded as UTF-8 and stripped."""
        return (
            self.stdout.decode("utf-8", errors="replace").strip(),
            self.stderr.decode("utf-8", errors="replace").strip(),
        )
