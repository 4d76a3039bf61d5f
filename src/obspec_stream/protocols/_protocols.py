"""Core protocol definitions for object store interfaces."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from obspec import GetAsync, HeadAsync


@runtime_checkable
class StreamableStore(GetAsync, HeadAsync, Protocol):
    """
    Read interface required to stream an object by byte ranges.

    This protocol combines the two obspec protocols a
    [RangeStreamReader][obspec_stream.readers.RangeStreamReader] needs:

    - [HeadAsync][obspec.HeadAsync]: learn the object size before streaming
    - [GetAsync][obspec.GetAsync]: fetch a byte range, passed as
      ``options={"range": (start, end)}``, and iterate its body asynchronously

    obstore stores ([S3Store][obstore.store.S3Store],
    [MemoryStore][obstore.store.MemoryStore], ...) and
    [AiohttpStore][obspec_stream.stores.AiohttpStore] all implement it.
    """

    pass


@runtime_checkable
class AsyncReadable(Protocol):
    """
    Protocol for pull-style asynchronous byte sources.

    Callers invoke `readinto` repeatedly, each time with a buffer they own.
    A return value of 0 for a non-empty buffer means end of stream; a single
    call is never guaranteed to fill the buffer.

    Examples
    --------

    ```python
    async def drain(source: AsyncReadable) -> int:
        buf = bytearray(64 * 1024)
        total = 0
        while n := await source.readinto(buf):
            total += n
        return total
    ```
    """

    async def readinto(self, buffer: bytearray | memoryview, /) -> int:
        """
        Read bytes into ``buffer``.

        Parameters
        ----------
        buffer
            Writable buffer; its length bounds how many bytes are produced.

        Returns
        -------
        int
            Number of bytes written, 0 at end of stream.
        """
        ...


__all__ = ["AsyncReadable", "StreamableStore"]
