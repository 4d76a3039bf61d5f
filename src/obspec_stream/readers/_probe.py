"""Object size probe run once before streaming starts."""

from __future__ import annotations

import logging

from obspec import HeadAsync

from obspec_stream.errors import (
    ObjectNotFoundError,
    SizeUnavailableError,
    TransportError,
    is_not_found,
)

logger = logging.getLogger(__name__)


async def probe_size(store: HeadAsync, path: str) -> int:
    """
    Fetch the total size of an object with a single metadata request.

    The request is not retried.

    Parameters
    ----------
    store
        Any object implementing [HeadAsync][obspec.HeadAsync].
    path
        The path to the object within the store.

    Returns
    -------
    int
        Object size in bytes.

    Raises
    ------
    ObjectNotFoundError
        The object does not exist.
    SizeUnavailableError
        The metadata carries no usable size.
    TransportError
        Any other failure of the metadata request.
    """
    try:
        meta = await store.head_async(path)
    except Exception as e:
        if is_not_found(e):
            raise ObjectNotFoundError(path) from e
        raise TransportError(f"HEAD {path} failed: {e!r}") from e

    size = meta.get("size") if meta else None
    if not isinstance(size, int) or size < 0:
        raise SizeUnavailableError(path)
    logger.debug("Probed %s: %d bytes", path, size)
    return size


__all__ = ["probe_size"]
