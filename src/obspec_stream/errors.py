"""Exceptions raised while probing and streaming remote objects.

The classification helpers at the bottom of this module are the only place that
inspects backend-specific error details (status codes, service error codes).
Readers call them instead of matching on exception text themselves.
"""

from __future__ import annotations

# Service error codes that mean "there is nothing left to read at this offset".
RANGE_EXHAUSTED_CODES = (
    "InvalidRange",
    "InvalidPartNumber",
    "Range Not Satisfiable",
    "RequestedRangeNotSatisfiable",
)


class StreamError(Exception):
    """Base class for all obspec-stream errors."""


class ConfigError(StreamError, ValueError):
    """Invalid reader or sink configuration."""


class ObjectNotFoundError(StreamError, FileNotFoundError):
    """The object does not exist in the store."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Object not found: {path}")
        self.path = path


class SizeUnavailableError(StreamError):
    """The store returned metadata without an object size."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Store reported no size for object: {path}")
        self.path = path


class TransportError(StreamError):
    """A network or service fault on a metadata or range request."""


class BodyReadError(TransportError):
    """A fault while draining a range response body."""


def _status_of(exc: BaseException) -> int | None:
    # aiohttp.ClientResponseError uses `status`, other clients `status_code`
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_not_found(exc: BaseException) -> bool:
    """Return True if ``exc`` reports a missing object."""
    if isinstance(exc, FileNotFoundError):
        return True
    # obstore.exceptions.NotFoundError
    if type(exc).__name__ == "NotFoundError":
        return True
    return _status_of(exc) == 404


def is_range_exhausted(exc: BaseException) -> bool:
    """
    Return True if ``exc`` means the requested range starts past the object end.

    Matches an HTTP 416 status, or one of [RANGE_EXHAUSTED_CODES][] anywhere in
    the error text (obstore surfaces S3 service codes only in the message).
    """
    if _status_of(exc) == 416:
        return True
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code in RANGE_EXHAUSTED_CODES:
        return True
    text = str(exc)
    return any(c in text for c in RANGE_EXHAUSTED_CODES)


__all__ = [
    "BodyReadError",
    "ConfigError",
    "ObjectNotFoundError",
    "RANGE_EXHAUSTED_CODES",
    "SizeUnavailableError",
    "StreamError",
    "TransportError",
    "is_not_found",
    "is_range_exhausted",
]
