"""Sequential range-request reader with bounded body-read retries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from obspec_stream.errors import (
    BodyReadError,
    ConfigError,
    ObjectNotFoundError,
    StreamError,
    TransportError,
    is_not_found,
    is_range_exhausted,
)
from obspec_stream.readers._probe import probe_size
from obspec_stream.readers._state import ObjectHandle, ReadCursor, ReaderState

if TYPE_CHECKING:
    from collections.abc import Buffer

    from obspec_stream.config import StreamConfig
    from obspec_stream.protocols import StreamableStore

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024
DEFAULT_RETRIES = 3


def _validate(chunk_size: int, retries: int) -> None:
    if chunk_size <= 0:
        raise ConfigError(f"chunk_size must be positive, got {chunk_size}")
    if retries < 0:
        raise ConfigError(f"retries must be non-negative, got {retries}")


async def _get_range(
    store: StreamableStore, path: str, start: int, end: int
) -> Any:
    return await store.get_async(path, options={"range": (start, end)})


async def _next_piece(body: AsyncIterator[Buffer]) -> Buffer | None:
    """Await the next body piece, mapping end of body to None."""
    try:
        return await body.__anext__()
    except StopAsyncIteration:
        return None


class RangeStreamReader:
    """
    A pull-style async reader that streams an object through ranged GETs.

    The reader issues one [`get_async()`][obspec.GetAsync] per chunk, with
    ``options={"range": (start, end)}``, and drains each response body into the
    buffers handed to [`readinto()`][obspec_stream.readers.RangeStreamReader.readinto].
    Only one network operation is outstanding at a time and at most one
    received body piece is held, so memory use is bounded by the chunk size
    rather than the object size.

    When to Use
    -----------
    Use RangeStreamReader when:

    - **Copying large objects**: Writing to a local file, a tar archive or
      another bucket without loading the object in memory.
    - **Flaky networks**: Body read failures are retried by re-requesting the
      unread part of the current range, invisibly to the consumer.
    - **Backpressure**: Each range request is clamped to the caller's buffer,
      so a slow consumer with a small buffer gets small requests.

    Consider alternatives when:

    - You need random access or seeking. This reader only moves forward.
    - You need many ranges concurrently. This reader never prefetches.

    Reading
    -------

    ```python
    from obstore.store import S3Store
    from obspec_stream.readers import RangeStreamReader

    store = S3Store("my-bucket")
    async with await RangeStreamReader.open(store, "big/file.bin") as reader:
        buf = bytearray(1024 * 1024)
        while n := await reader.readinto(buf):
            consume(buf[:n])
    ```

    States
    ------
    The reader moves through [ReaderState][obspec_stream.readers.ReaderState]:
    ``IDLE`` → ``REQUEST_PENDING`` → ``BODY_STREAMING`` → ``IDLE`` … until it
    reaches ``EXHAUSTED`` (every later read returns 0) or ``FAILED`` (every later
    read raises the same exception).
    """

    def __init__(
        self,
        store: StreamableStore,
        handle: ObjectHandle,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        retries: int = DEFAULT_RETRIES,
    ) -> None:
        """
        Create a reader for an object whose size is already known.

        Most callers should use [`open()`][obspec_stream.readers.RangeStreamReader.open],
        which probes the size first.

        Parameters
        ----------
        store
            Any object implementing [GetAsync][obspec.GetAsync].
        handle
            Identity and size of the object.
        chunk_size
            Maximum number of bytes requested per range request.
        retries
            Number of body read failures tolerated over the reader's lifetime.
        """
        _validate(chunk_size, retries)
        self._store = store
        self._handle = handle
        self._cursor = ReadCursor(chunk_size=chunk_size, retries_allowed=retries)
        self._state = ReaderState.IDLE
        # The single outstanding network operation: a range request or a body drain step
        self._inflight: asyncio.Future[Any] | None = None
        self._body: AsyncIterator[Buffer] | None = None
        # Received from the body but not yet delivered to the caller
        self._pending: memoryview | None = None
        self._range: tuple[int, int] = (0, 0)
        self._error: StreamError | None = None
        self._busy = False
        self._closed = False

    @classmethod
    async def open(
        cls,
        store: StreamableStore,
        path: str,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        retries: int = DEFAULT_RETRIES,
        container: str | None = None,
    ) -> RangeStreamReader:
        """
        Probe the object size and return a reader positioned at offset 0.

        Parameters
        ----------
        store
            Any object implementing [GetAsync][obspec.GetAsync] and
            [HeadAsync][obspec.HeadAsync].
        path
            The path to the object within the store.
        chunk_size
            Maximum number of bytes requested per range request.
        retries
            Number of body read failures tolerated over the reader's lifetime.
        container
            Bucket or container name, used for logging and ``repr`` only.

        Raises
        ------
        ObjectNotFoundError, SizeUnavailableError, TransportError
            The size probe failed; no reader is created.
        """
        _validate(chunk_size, retries)
        size = await probe_size(store, path)
        return cls(
            store,
            ObjectHandle(container=container, key=path, size=size),
            chunk_size=chunk_size,
            retries=retries,
        )

    @classmethod
    async def from_config(
        cls, store: StreamableStore, config: StreamConfig
    ) -> RangeStreamReader:
        """Open a reader for the object described by ``config``."""
        return await cls.open(
            store,
            config.key,
            chunk_size=config.chunk_size,
            retries=config.retries,
            container=config.bucket,
        )

    @property
    def handle(self) -> ObjectHandle:
        return self._handle

    @property
    def size(self) -> int:
        """Total object size in bytes, as reported by the probe."""
        return self._handle.size

    @property
    def state(self) -> ReaderState:
        return self._state

    @property
    def retries_used(self) -> int:
        return self._cursor.retries_used

    @property
    def closed(self) -> bool:
        return self._closed

    def tell(self) -> int:
        """Return the number of bytes delivered so far."""
        return self._cursor.downloaded

    async def readinto(self, buffer: bytearray | memoryview, /) -> int:
        """
        Read bytes into ``buffer``.

        Returns 0 only at the end of the object (or for an empty buffer). A
        single call may issue a range request and drain its body before
        returning; it never returns 0 between two ranges.

        Parameters
        ----------
        buffer
            Writable buffer. Its length caps both the bytes returned and the
            size of any range request issued by this call.

        Returns
        -------
        int
            Number of bytes written to ``buffer``.

        Raises
        ------
        TransportError
            A range request failed, or the body retry budget ran out
            ([BodyReadError][obspec_stream.errors.BodyReadError]). Once raised,
            every later call raises the same exception.
        """
        if self._closed:
            raise ValueError("I/O operation on closed reader")
        if self._busy:
            raise RuntimeError("RangeStreamReader does not support concurrent reads")
        view = memoryview(buffer).cast("B")
        self._busy = True
        try:
            return await self._pull(view)
        finally:
            self._busy = False

    async def _pull(self, view: memoryview) -> int:
        while True:
            state = self._state

            if state.terminal:
                if state is ReaderState.FAILED:
                    assert self._error is not None
                    raise self._error
                return 0
            if not len(view):
                return 0

            if state is ReaderState.BODY_STREAMING:
                if self._pending is not None:
                    return self._deliver(view)
                if self._inflight is None:
                    assert self._body is not None
                    self._inflight = asyncio.ensure_future(_next_piece(self._body))
                task = await self._settle()
                try:
                    piece = task.result()
                except Exception as e:
                    self._retry_or_fail(e)
                    continue
                if piece is None:
                    start, end = self._range
                    if self._cursor.downloaded == start < end:
                        # Every range response must deliver at least one byte
                        self._retry_or_fail(
                            TransportError(
                                f"GET {self._handle.key} bytes={start}-{end - 1} "
                                "returned an empty body"
                            )
                        )
                        continue
                    # End of this range, move on to the next one
                    self._body = None
                    self._set_state(ReaderState.IDLE)
                elif len(piece):
                    self._accept(piece)
                continue

            if state is ReaderState.REQUEST_PENDING:
                task = await self._settle()
                try:
                    result = task.result()
                except Exception as e:
                    if is_range_exhausted(e):
                        logger.debug(
                            "No more ranges for %s at offset %d",
                            self._handle.key,
                            self._range[0],
                        )
                        self._set_state(ReaderState.EXHAUSTED)
                        return 0
                    if is_not_found(e):
                        # Deleted after the size probe
                        self._fail(ObjectNotFoundError(self._handle.key), e)
                        continue
                    start, end = self._range
                    self._fail(
                        TransportError(
                            f"GET {self._handle.key} bytes={start}-{end - 1} failed: {e!r}"
                        ),
                        e,
                    )
                    continue
                self._body = aiter(result)
                self._set_state(ReaderState.BODY_STREAMING)
                continue

            # IDLE
            if self._cursor.downloaded >= self._handle.size:
                self._set_state(ReaderState.EXHAUSTED)
                return 0
            start, end = self._cursor.next_range(self._handle.size, len(view))
            self._request(start, end)

    async def _settle(self) -> asyncio.Future[Any]:
        """Wait for the in-flight operation and return it, done.

        If the caller is cancelled while waiting, the operation stays in flight
        and the next read resumes waiting on it. A reader closed during the wait
        raises ValueError rather than the cancellation of the dropped operation.
        """
        task = self._inflight
        assert task is not None
        await asyncio.wait((task,))
        if self._closed:
            raise ValueError("I/O operation on closed reader")
        self._inflight = None
        return task

    def _request(self, start: int, end: int) -> None:
        logger.debug("GET %s bytes=%d-%d", self._handle.key, start, end - 1)
        self._range = (start, end)
        self._inflight = asyncio.ensure_future(
            _get_range(self._store, self._handle.key, start, end)
        )
        self._set_state(ReaderState.REQUEST_PENDING)

    def _accept(self, piece: Buffer) -> None:
        view = memoryview(piece).cast("B")
        if self._cursor.downloaded + len(view) > self._range[1]:
            self._fail(
                TransportError(
                    f"GET {self._handle.key} returned more bytes than the "
                    f"requested range {self._range[0]}-{self._range[1] - 1}"
                )
            )
            return
        self._pending = view

    def _deliver(self, view: memoryview) -> int:
        pending = self._pending
        assert pending is not None
        n = min(len(view), len(pending))
        view[:n] = pending[:n]
        self._pending = pending[n:] if n < len(pending) else None
        self._cursor.downloaded += n
        return n

    def _retry_or_fail(self, exc: Exception) -> None:
        self._body = None
        start, end = self._cursor.downloaded, self._range[1]
        if start >= end:
            # Every byte of the range was already received
            self._set_state(ReaderState.IDLE)
            return
        cursor = self._cursor
        if cursor.retries_left > 0:
            cursor.retries_used += 1
            logger.warning(
                "Body read of %s failed at offset %d (%r), retry %d/%d",
                self._handle.key,
                start,
                exc,
                cursor.retries_used,
                cursor.retries_allowed,
            )
            self._request(start, end)
            return
        self._fail(
            BodyReadError(
                f"Reading {self._handle.key} failed at offset {start} after "
                f"{cursor.retries_used} retries: {exc!r}"
            ),
            exc,
        )

    def _fail(self, error: StreamError, cause: BaseException | None = None) -> None:
        if cause is not None:
            error.__cause__ = cause
        logger.debug("Reader for %s failed: %s", self._handle.key, error)
        self._error = error
        self._body = None
        self._pending = None
        self._set_state(ReaderState.FAILED)

    def _set_state(self, state: ReaderState) -> None:
        if state is not self._state:
            logger.debug(
                "%s: %s -> %s", self._handle.key, self._state.value, state.value
            )
            self._state = state

    async def read(self, size: int = -1, /) -> bytes:
        """
        Read up to ``size`` bytes.

        Parameters
        ----------
        size
            Maximum number of bytes to return. If -1, read to the end.

        Returns
        -------
        bytes
            The data read, empty at the end of the object.
        """
        if size < 0:
            return await self.readall()
        buf = bytearray(min(size, self._handle.size - self._cursor.downloaded))
        n = await self.readinto(buf)
        del buf[n:]
        return bytes(buf)

    async def readall(self) -> bytes:
        """Read from the current position to the end of the object."""
        out = bytearray()
        buf = bytearray(self._cursor.chunk_size)
        while n := await self.readinto(buf):
            out += buf[:n]
        return bytes(out)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        """Iterate over the remaining data in pieces of at most ``chunk_size``."""
        while data := await self.read(self._cursor.chunk_size):
            yield data

    async def aclose(self) -> None:
        """
        Drop any in-flight work and close the reader.

        The in-flight request is cancelled locally; nothing is sent to the store.
        """
        if self._closed:
            return
        self._closed = True
        task, self._inflight = self._inflight, None
        self._body = None
        self._pending = None
        if task is not None:
            task.cancel()
            await asyncio.wait((task,))
            if not task.cancelled():
                task.exception()

    async def __aenter__(self) -> RangeStreamReader:
        """Enter the async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit the async context manager and close the reader."""
        await self.aclose()

    def __repr__(self) -> str:
        handle = self._handle
        name = f"{handle.container}/{handle.key}" if handle.container else handle.key
        return (
            f"<RangeStreamReader {name!r} {self._cursor.downloaded}/{handle.size} "
            f"{self._state.value}>"
        )


__all__ = ["DEFAULT_CHUNK_SIZE", "DEFAULT_RETRIES", "RangeStreamReader"]
