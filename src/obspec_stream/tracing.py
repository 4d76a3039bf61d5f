"""Request tracing utilities for obspec-stream.

This module provides a store wrapper that records the metadata and range
requests a reader makes, useful for debugging, profiling, and checking how
request sizes follow the consumer's buffer.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Literal, TypedDict

from obspec_stream.protocols import StreamableStore

if TYPE_CHECKING:
    from obspec import GetOptions, GetResultAsync, ObjectMeta

logger = logging.getLogger(__name__)

Method = Literal["get", "head"]


class _TraceInfo(TypedDict, total=False):
    """Info collected during a traced operation."""

    start: int
    length: int
    error: str


@dataclass
class RequestRecord:
    """Record of a single store request.

    Note
    ----
    The ``duration`` field measures the time until the store returned the
    response headers. Body transfer happens later, while the result is iterated,
    and is not included.
    """

    path: str
    start: int
    length: int
    end: int  # start + length
    timestamp: float
    duration: float | None = None
    method: Method = "get"
    error: str | None = None


@dataclass
class RequestTrace:
    """Collection of request records with analysis methods."""

    requests: list[RequestRecord] = field(default_factory=list)

    def add(
        self,
        path: str,
        start: int,
        length: int,
        timestamp: float,
        duration: float | None = None,
        method: Method = "get",
        error: str | None = None,
    ) -> None:
        """Add a request record."""
        self.requests.append(
            RequestRecord(
                path=path,
                start=start,
                length=length,
                end=start + length,
                timestamp=timestamp,
                duration=duration,
                method=method,
                error=error,
            )
        )

    def clear(self) -> None:
        """Clear all recorded requests."""
        self.requests.clear()

    def ranges(self, path: str | None = None) -> list[tuple[int, int]]:
        """``(start, end)`` of every get request, in request order."""
        return [
            (r.start, r.end)
            for r in self.requests
            if r.method == "get" and (path is None or r.path == path)
        ]

    @property
    def total_bytes(self) -> int:
        """Total bytes requested."""
        return sum(r.length for r in self.requests)

    @property
    def total_requests(self) -> int:
        """Total number of requests."""
        return len(self.requests)

    def summary(self) -> dict[str, Any]:
        """Get summary statistics."""
        gets = [r for r in self.requests if r.method == "get"]
        if not gets:
            return {
                "total_requests": len(self.requests),
                "total_bytes": 0,
                "unique_files": len(set(r.path for r in self.requests)),
                "failed_requests": sum(1 for r in self.requests if r.error),
            }

        lengths = [r.length for r in gets]

        return {
            "total_requests": len(self.requests),
            "total_bytes": sum(lengths),
            "unique_files": len(set(r.path for r in self.requests)),
            "failed_requests": sum(1 for r in self.requests if r.error),
            "min_request_size": min(lengths),
            "max_request_size": max(lengths),
            "mean_request_size": sum(lengths) / len(lengths),
        }


class TracingStore(StreamableStore):
    """
    A wrapper that traces all requests made to an underlying store.

    Examples
    --------
    ```python
    from obstore.store import S3Store
    from obspec_stream.readers import RangeStreamReader
    from obspec_stream.tracing import RequestTrace, TracingStore

    trace = RequestTrace()
    store = TracingStore(S3Store("bucket"), trace)

    reader = await RangeStreamReader.open(store, "file.bin", chunk_size=4096)
    await reader.readall()

    print(trace.ranges())
    print(trace.summary())
    ```
    """

    def __init__(
        self,
        store: StreamableStore,
        trace: RequestTrace,
        *,
        on_request: Callable[[RequestRecord], None] | None = None,
    ) -> None:
        """
        Create a tracing wrapper around a store.

        Parameters
        ----------
        store
            Any object implementing [GetAsync][obspec.GetAsync] and
            [HeadAsync][obspec.HeadAsync].
        trace
            RequestTrace instance to record requests to.
        on_request
            Optional callback called for each request (e.g., for logging).
        """
        self._store = store
        self._trace = trace
        self._on_request = on_request

    def __getattr__(self, name: str) -> Any:
        """Forward unknown attributes to the underlying store."""
        return getattr(self._store, name)

    @contextmanager
    def _record(self, path: str, method: Method) -> Generator[_TraceInfo, None, None]:
        """Record a request with automatic timing.

        Records are saved even if the operation raises an exception.
        """
        info: _TraceInfo = {}
        start_time = time.time()
        try:
            yield info
        except Exception as e:
            info["error"] = repr(e)
            raise
        finally:
            self._trace.add(
                path=path,
                start=info.get("start", 0),
                length=info.get("length", 0),
                timestamp=start_time,
                duration=time.time() - start_time,
                method=method,
                error=info.get("error"),
            )
            logger.debug("traced %s", self._trace.requests[-1])
            if self._on_request:
                self._on_request(self._trace.requests[-1])

    async def get_async(
        self, path: str, *, options: GetOptions | None = None
    ) -> GetResultAsync:
        """Get a file or byte range (delegates to underlying store)."""
        with self._record(path, "get") as info:
            range_opt = (options or {}).get("range")
            if isinstance(range_opt, tuple):
                info["start"] = range_opt[0]
                info["length"] = range_opt[1] - range_opt[0]
            result = await self._store.get_async(path, options=options)
            if range_opt is None:
                info["length"] = result.meta.get("size") or 0
            return result

    async def head_async(self, path: str) -> ObjectMeta:
        """Get file metadata (delegates to underlying store)."""
        with self._record(path, "head"):
            return await self._store.head_async(path)


__all__ = ["RequestRecord", "RequestTrace", "TracingStore"]
