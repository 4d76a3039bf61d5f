"""Object store implementations.

This module provides concrete stores that satisfy
[StreamableStore][obspec_stream.protocols.StreamableStore] for backends
obstore does not cover.
"""

from obspec_stream.stores._aiohttp import AiohttpGetResultAsync, AiohttpStore

__all__ = ["AiohttpGetResultAsync", "AiohttpStore"]
