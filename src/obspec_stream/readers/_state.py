"""State carried by a range stream reader."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ReaderState(enum.Enum):
    """Phases of a [RangeStreamReader][obspec_stream.readers.RangeStreamReader]."""

    IDLE = "idle"
    REQUEST_PENDING = "request_pending"
    BODY_STREAMING = "body_streaming"
    EXHAUSTED = "exhausted"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ReaderState.EXHAUSTED, ReaderState.FAILED)


@dataclass(frozen=True)
class ObjectHandle:
    """Identity and size of the remote object, fixed after the size probe."""

    container: str | None
    key: str
    size: int


@dataclass
class ReadCursor:
    """Mutable progress of a reader through its object."""

    chunk_size: int
    retries_allowed: int
    downloaded: int = 0
    retries_used: int = 0

    @property
    def retries_left(self) -> int:
        return self.retries_allowed - self.retries_used

    def next_range(self, size: int, capacity: int) -> tuple[int, int]:
        """
        Byte range to request next, as ``(start, end)`` with ``end`` exclusive.

        The request is never longer than ``capacity``, so a consumer with a
        small buffer shrinks the request instead of the reader holding the
        overflow.
        """
        length = min(self.chunk_size, capacity)
        return self.downloaded, min(self.downloaded + length, size)


__all__ = ["ObjectHandle", "ReadCursor", "ReaderState"]
