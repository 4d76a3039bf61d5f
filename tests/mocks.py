"""Shared mock classes for tests."""

from __future__ import annotations

import asyncio


class MockServiceError(Exception):
    """Error carrying a service error code, like an S3 error response."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code


class MockHTTPError(Exception):
    """Error carrying an HTTP status, like aiohttp.ClientResponseError."""

    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status}")
        self.status = status


class MockBodyResult:
    """Mock GetResultAsync streaming ``data`` in pieces.

    If ``fail_after`` is set, the body raises ConnectionResetError after
    yielding that many pieces.
    """

    def __init__(
        self,
        data: bytes,
        start: int,
        *,
        piece_size: int | None = None,
        fail_after: int | None = None,
        delay: float = 0.0,
    ):
        self._data = data
        self._start = start
        self._piece_size = piece_size or max(len(data), 1)
        self._fail_after = fail_after
        self._delay = delay

    @property
    def attributes(self):
        return {}

    @property
    def meta(self):
        return {
            "path": "",
            "last_modified": None,
            "size": len(self._data),
            "e_tag": None,
            "version": None,
        }

    @property
    def range(self):
        return (self._start, self._start + len(self._data))

    async def buffer_async(self):
        return self._data

    async def __aiter__(self):
        pieces = [
            self._data[i : i + self._piece_size]
            for i in range(0, len(self._data), self._piece_size)
        ]
        for i, piece in enumerate(pieces):
            if i == self._fail_after:
                raise ConnectionResetError("connection reset by peer")
            if self._delay:
                await asyncio.sleep(self._delay)
            yield piece
        if self._fail_after is not None and self._fail_after >= len(pieces):
            raise ConnectionResetError("connection reset by peer")


class MockStreamStore:
    """A mock store implementing the StreamableStore protocol.

    Parameters
    ----------
    data
        Object contents, served for any path.
    size
        Size reported by head_async. Defaults to ``len(data)``; None simulates
        a service that reports no length.
    piece_size
        Size of the body pieces each range response yields.
    body_failures
        Number of range responses whose body fails after its first piece.
    get_errors
        Exceptions raised by successive get_async calls, before any body failure.
    head_error
        Exception raised by head_async.
    overrun
        Extra bytes appended to every range response.
    empty_bodies
        Number of range responses that succeed with a zero-length body.
    get_delay
        Seconds get_async waits before answering.
    """

    _MISSING = object()

    def __init__(
        self,
        data: bytes = b"test data",
        *,
        size=_MISSING,
        piece_size: int | None = None,
        body_failures: int = 0,
        get_errors: list[Exception] | None = None,
        head_error: Exception | None = None,
        overrun: int = 0,
        get_delay: float = 0.0,
        empty_bodies: int = 0,
    ):
        self._data = data
        self._size = len(data) if size is self._MISSING else size
        self._piece_size = piece_size
        self._body_failures = body_failures
        self._get_errors = list(get_errors or [])
        self._head_error = head_error
        self._overrun = overrun
        self._get_delay = get_delay
        self._empty_bodies = empty_bodies
        # Track calls for testing
        self.head_calls: list[str] = []
        self.requests: list[tuple[int, int]] = []

    async def head_async(self, path):
        self.head_calls.append(path)
        if self._head_error is not None:
            raise self._head_error
        return {
            "path": path,
            "last_modified": None,
            "size": self._size,
            "e_tag": None,
            "version": None,
        }

    async def get_async(self, path, *, options=None):
        start, end = options["range"]
        self.requests.append((start, end))
        if self._get_delay:
            await asyncio.sleep(self._get_delay)
        if self._get_errors:
            raise self._get_errors.pop(0)
        if start >= len(self._data):
            raise MockServiceError("InvalidRange", "The requested range is not satisfiable")
        if self._empty_bodies:
            self._empty_bodies -= 1
            return MockBodyResult(b"", start)
        fail_after = None
        if self._body_failures:
            self._body_failures -= 1
            fail_after = 1
        body = self._data[start:end] + b"\xff" * self._overrun
        return MockBodyResult(
            body, start, piece_size=self._piece_size, fail_after=fail_after
        )
