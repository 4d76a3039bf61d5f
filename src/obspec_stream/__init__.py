from ._version import __version__
from .config import CopyConfig, StreamConfig
from .errors import (
    BodyReadError,
    ObjectNotFoundError,
    SizeUnavailableError,
    StreamError,
    TransportError,
)
from .readers import RangeStreamReader, ReaderState

__all__ = [
    "__version__",
    "BodyReadError",
    "CopyConfig",
    "ObjectNotFoundError",
    "RangeStreamReader",
    "ReaderState",
    "SizeUnavailableError",
    "StreamConfig",
    "StreamError",
    "TransportError",
]
