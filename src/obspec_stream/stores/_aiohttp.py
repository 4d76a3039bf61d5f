"""
Aiohttp-based implementation of the StreamableStore protocol.

This module provides a plain HTTP backend for servers that honour ``Range``
headers but are not S3-compatible (static file servers, CDNs, presigned URLs).
Unlike a buffered client, range responses are not read up front: the returned
result streams its body in pieces as it is iterated.

Example
-------

```python
from obspec_stream.readers import RangeStreamReader
from obspec_stream.stores import AiohttpStore

async with AiohttpStore("https://example.com/data") as store:
    reader = await RangeStreamReader.open(store, "file.bin")
    data = await reader.read(1000)
```
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING

from obspec_stream.protocols import StreamableStore

if TYPE_CHECKING:
    from obspec import Attributes, GetOptions, ObjectMeta

try:
    import aiohttp
except ImportError as e:
    raise ImportError(
        "aiohttp is required for AiohttpStore. Install it with: pip install aiohttp"
    ) from e

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 64 * 1024


class AiohttpGetResultAsync:
    """
    Streaming result of a get request made with aiohttp.

    Implements the obspec GetResultAsync protocol. The body can be consumed
    once, either by async iteration or by
    [`buffer_async()`][obspec_stream.stores.AiohttpGetResultAsync.buffer_async].
    The underlying connection is released when the body is exhausted or when
    iteration stops early.
    """

    def __init__(
        self,
        response: aiohttp.ClientResponse,
        meta: ObjectMeta,
        attributes: Attributes,
        byte_range: tuple[int, int],
        *,
        read_size: int = DEFAULT_READ_SIZE,
        owned_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._response = response
        self._meta = meta
        self._attributes = attributes
        self._range = byte_range
        self._read_size = read_size
        self._owned_session = owned_session

    @property
    def attributes(self) -> Attributes:
        """Additional object attributes."""
        return self._attributes

    @property
    def meta(self) -> ObjectMeta:
        """The ObjectMeta for this object."""
        return self._meta

    @property
    def range(self) -> tuple[int, int]:
        """The range of bytes returned by this request."""
        return self._range

    async def buffer_async(self) -> bytes:
        """Read the whole body into memory."""
        try:
            return await self._response.read()
        finally:
            await self._release()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        """Async iterate over body pieces of at most ``read_size`` bytes."""
        try:
            async for piece in self._response.content.iter_chunked(self._read_size):
                yield piece
        finally:
            await self._release()

    async def _release(self) -> None:
        self._response.release()
        if self._owned_session is not None:
            await self._owned_session.close()
            self._owned_session = None


def _get_header_case_insensitive(
    headers: dict, name: str, default: str | None = None
) -> str | None:
    """Get a header value with case-insensitive name lookup."""
    if name in headers:
        return headers[name]
    name_lower = name.lower()
    for key, value in headers.items():
        if key.lower() == name_lower:
            return value
    return default


def _parse_meta_from_headers(path: str, headers: dict) -> ObjectMeta:
    """Extract ObjectMeta from HTTP response headers.

    ``size`` is None when neither Content-Range nor Content-Length gives the
    total object size.
    """
    last_modified_str = _get_header_case_insensitive(headers, "Last-Modified")
    last_modified = datetime.now(timezone.utc)
    if last_modified_str:
        try:
            last_modified = parsedate_to_datetime(last_modified_str)
        except (ValueError, TypeError):
            pass

    size = None
    content_range = _get_header_case_insensitive(headers, "Content-Range")
    if content_range and "/" in content_range:
        # Format: bytes 0-999/1234
        total_str = content_range.split("/")[-1]
        if total_str != "*":
            size = int(total_str)
    else:
        content_length_str = _get_header_case_insensitive(headers, "Content-Length")
        if content_length_str:
            size = int(content_length_str)

    return {
        "path": path,
        "last_modified": last_modified,
        "size": size,  # type: ignore[typeddict-item]
        "e_tag": _get_header_case_insensitive(headers, "ETag"),
        "version": None,
    }


def _parse_attributes_from_headers(headers: dict) -> Attributes:
    """Extract Attributes from HTTP response headers."""
    attrs: Attributes = {}
    header_names = [
        "Content-Disposition",
        "Content-Encoding",
        "Content-Language",
        "Content-Type",
        "Cache-Control",
    ]
    for header_name in header_names:
        value = _get_header_case_insensitive(headers, header_name)
        if value is not None:
            attrs[header_name] = value
    return attrs


class AiohttpStore(StreamableStore):
    """
    An [aiohttp](https://docs.aiohttp.org/en/stable/)-based store for HTTP range reads.

    The store should be used as an async context manager so that one HTTP
    session is shared by every request. Without it, each request opens a
    session that is closed when its body has been consumed.

    Parameters
    ----------
    base_url
        The base URL for this store. All paths are resolved relative to this URL.
    headers
        Optional HTTP headers to include in all requests (e.g., authentication).
    timeout
        Connect and per-read socket timeout in seconds. Default is 30. There is
        no total timeout, so long bodies can stream for as long as data flows.
    read_size
        Maximum size of each body piece yielded while streaming.

    Examples
    --------

    ```python
    async with AiohttpStore(
        "https://api.example.com/data",
        headers={"Authorization": "Bearer <token>"}
    ) as store:
        meta = await store.head_async("file.bin")
        result = await store.get_async("file.bin", options={"range": (0, 1024)})
        async for piece in result:
            ...
    ```
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        read_size: int = DEFAULT_READ_SIZE,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=timeout, sock_read=timeout
        )
        self.read_size = read_size
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> AiohttpStore:
        """Enter the async context manager, creating a reusable session."""
        self._session = self._new_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit the async context manager, closing the session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _new_session(self) -> aiohttp.ClientSession:
        # Byte ranges address the stored encoding, not the decoded body
        return aiohttp.ClientSession(
            timeout=self.timeout, headers=self.headers, auto_decompress=False
        )

    def _build_url(self, path: str) -> str:
        """Build the full URL from base URL and path."""
        path = path.removeprefix("/")
        return f"{self.base_url}/{path}" if path else self.base_url

    async def get_async(
        self,
        path: str,
        *,
        options: GetOptions | None = None,
    ) -> AiohttpGetResultAsync:
        """
        Start downloading a file or a byte range of it.

        The response headers have been received when this returns; the body is
        read while the result is iterated.

        Parameters
        ----------
        path
            Path to the file relative to base_url.
        options
            Optional get options. Only ``range`` is honoured, as a
            ``(start, end)`` tuple with ``end`` exclusive, an ``{"offset": n}``
            or a ``{"suffix": n}`` dict.

        Returns
        -------
        AiohttpGetResultAsync
            Streaming result.

        Raises
        ------
        aiohttp.ClientResponseError
            Non-2xx status, e.g. 404 or 416 (range not satisfiable).
        """
        url = self._build_url(path)
        request_headers: dict[str, str] = {}
        byte_range: tuple[int, int] | None = None

        if options and "range" in options:
            range_opt = options["range"]
            if isinstance(range_opt, tuple):
                start, end = range_opt[0], range_opt[1]
                # HTTP Range is inclusive on both ends, obspec end is exclusive
                request_headers["Range"] = f"bytes={start}-{end - 1}"
                byte_range = (start, end)
            elif isinstance(range_opt, dict):
                if (offset := range_opt.get("offset")) is not None:
                    request_headers["Range"] = f"bytes={offset}-"
                elif (suffix := range_opt.get("suffix")) is not None:
                    request_headers["Range"] = f"bytes=-{suffix}"

        owned = None
        session = self._session
        if session is None:
            owned = session = self._new_session()

        response = None
        try:
            response = await session.get(url, headers=request_headers)
            response.raise_for_status()
            headers = dict(response.headers)
            if byte_range is not None and response.status != 206:
                # Server ignored the Range header; only usable if it sent exactly the range
                if byte_range[0] != 0 or response.content_length != byte_range[1]:
                    raise aiohttp.ClientPayloadError(
                        f"Server ignored Range header for {url} (status {response.status})"
                    )
            meta = _parse_meta_from_headers(path, headers)
            if byte_range is None:
                byte_range = (0, response.content_length or 0)
        except BaseException:
            if response is not None:
                response.release()
            if owned is not None:
                await owned.close()
            raise

        logger.debug("GET %s %s -> %d", url, request_headers.get("Range", ""), response.status)
        return AiohttpGetResultAsync(
            response,
            meta,
            _parse_attributes_from_headers(headers),
            byte_range,
            read_size=self.read_size,
            owned_session=owned,
        )

    async def head_async(self, path: str) -> ObjectMeta:
        """
        Get file metadata via a HEAD request.

        Parameters
        ----------
        path
            Path to the file relative to base_url.

        Returns
        -------
        ObjectMeta
            File metadata. ``size`` is None if the server sent no length.
        """
        url = self._build_url(path)
        if self._session is not None:
            async with self._session.head(url) as response:
                response.raise_for_status()
                return _parse_meta_from_headers(path, dict(response.headers))

        async with self._new_session() as session:
            async with session.head(url) as response:
                response.raise_for_status()
                return _parse_meta_from_headers(path, dict(response.headers))


__all__ = ["AiohttpGetResultAsync", "AiohttpStore"]
