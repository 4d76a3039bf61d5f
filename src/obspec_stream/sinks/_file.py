"""Write a streamed object to a local file."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from obspec_stream.protocols import AsyncReadable
from obspec_stream.readers import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)


async def download_to_file(
    reader: AsyncReadable,
    path: str | os.PathLike[str],
    *,
    buffer_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    Drain ``reader`` into a local file.

    The file is created or truncated. If reading fails, the partial file is
    removed and the error propagates.

    Parameters
    ----------
    reader
        Any pull-style source, typically a
        [RangeStreamReader][obspec_stream.readers.RangeStreamReader].
    path
        Destination file path.
    buffer_size
        Size of the buffer handed to each ``readinto`` call.

    Returns
    -------
    int
        Number of bytes written.
    """
    path = Path(path)
    buf = bytearray(buffer_size)
    view = memoryview(buf)
    written = 0
    try:
        with path.open("wb") as f:
            while n := await reader.readinto(buf):
                f.write(view[:n])
                written += n
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    logger.info("Wrote %d bytes to %s", written, path)
    return written


__all__ = ["download_to_file"]
