"""Copy a streamed object to another store in fixed-size parts."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from obspec import PutAsync

from obspec_stream.config import DEFAULT_PART_SIZE
from obspec_stream.errors import ConfigError
from obspec_stream.protocols import AsyncReadable

logger = logging.getLogger(__name__)


@dataclass
class CopyResult:
    """Outcome of [copy_object][obspec_stream.sinks.copy_object]."""

    bytes_copied: int = 0
    parts: int = 0
    e_tag: str | None = None


async def iter_parts(
    reader: AsyncReadable, part_size: int = DEFAULT_PART_SIZE
) -> AsyncIterator[bytes]:
    """
    Group the output of ``reader`` into parts of exactly ``part_size`` bytes.

    Only the last part may be shorter. Nothing is yielded for an empty source.
    One part is held in memory at a time.
    """
    if part_size <= 0:
        raise ConfigError(f"part_size must be positive, got {part_size}")
    buf = bytearray(part_size)
    view = memoryview(buf)
    while True:
        filled = 0
        while filled < part_size:
            n = await reader.readinto(view[filled:])
            if not n:
                break
            filled += n
        if filled:
            yield bytes(view[:filled])
        if filled < part_size:
            return


async def copy_object(
    reader: AsyncReadable,
    dest: PutAsync,
    dest_path: str,
    *,
    part_size: int = DEFAULT_PART_SIZE,
    max_concurrency: int = 1,
) -> CopyResult:
    """
    Upload everything ``reader`` produces to ``dest_path`` in ``dest``.

    Parts are produced by [iter_parts][obspec_stream.sinks.iter_parts] and
    handed to the destination's multipart [`put_async()`][obspec.PutAsync].

    Parameters
    ----------
    reader
        Source stream.
    dest
        Destination store, e.g. an obstore [S3Store][obstore.store.S3Store].
    dest_path
        Destination key.
    part_size
        Upload part size. S3 requires at least 5 MiB for every part but the last.
    max_concurrency
        Parts uploaded concurrently by the destination.

    Returns
    -------
    CopyResult
        Bytes and parts uploaded and the destination e_tag.
    """
    result = CopyResult()

    async def counted() -> AsyncIterator[bytes]:
        async for part in iter_parts(reader, part_size):
            result.parts += 1
            result.bytes_copied += len(part)
            logger.info(
                "Part %d of %s read (%d bytes)", result.parts, dest_path, len(part)
            )
            yield part

    put_result = await dest.put_async(
        dest_path,
        counted(),
        chunk_size=part_size,
        max_concurrency=max_concurrency,
    )
    result.e_tag = put_result.get("e_tag")
    logger.info(
        "Copied %d bytes to %s in %d parts", result.bytes_copied, dest_path, result.parts
    )
    return result


__all__ = ["CopyResult", "copy_object", "iter_parts"]
