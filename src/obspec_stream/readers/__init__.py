"""Pull-style readers for object stores.

This module provides [RangeStreamReader][obspec_stream.readers.RangeStreamReader],
which exposes a remote object as a sequential async byte stream built from
successive range requests, and the size probe it runs on open.
"""

from obspec_stream.readers._probe import probe_size
from obspec_stream.readers._state import ObjectHandle, ReadCursor, ReaderState
from obspec_stream.readers._stream import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_RETRIES,
    RangeStreamReader,
)

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_RETRIES",
    "ObjectHandle",
    "RangeStreamReader",
    "ReadCursor",
    "ReaderState",
    "probe_size",
]
