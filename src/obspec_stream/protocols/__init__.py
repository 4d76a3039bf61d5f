"""Protocols for object store interfaces.

This module defines the core protocols used throughout obspec-stream.
"""

from obspec_stream.protocols._protocols import AsyncReadable, StreamableStore

__all__ = ["AsyncReadable", "StreamableStore"]
