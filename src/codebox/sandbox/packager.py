"""Payload packager — wraps one source file in a tar archive for injection."""

from __future__ import annotations

import io
import tarfile
import time


def pack_source(filename: str, source: str | bytes) -> bytes:
    """Return an uncompressed tar archive holding *source* as *filename*.

    Text is UTF-8 encoded; bytes are stored verbatim.  The content is not
    inspected — syntax errors surface later as the toolchain's stderr.
    """
    data = source.encode("utf-8") if isinstance(source, str) else source

    info = tarfile.TarInfo(name=filename)
    info.size = len(data)
    info.mode = 0o644
    info.mtime = int(time.time())

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tar:
        tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()
