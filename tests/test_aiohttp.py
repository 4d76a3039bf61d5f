"""Tests for AiohttpStore and AiohttpGetResultAsync against a local aiohttp server."""

import re

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from obspec_stream.errors import ObjectNotFoundError, is_range_exhausted
from obspec_stream.readers import RangeStreamReader
from obspec_stream.stores import AiohttpGetResultAsync, AiohttpStore
from obspec_stream.stores._aiohttp import _parse_meta_from_headers

RANGE_RE = re.compile(r"bytes=(\d+)-(\d+)")


def make_app(content: bytes, *, honour_range: bool = True) -> web.Application:
    """Serve ``content`` at /file.bin with Range support."""

    async def handler(request: web.Request) -> web.Response:
        if request.match_info["name"] != "file.bin":
            raise web.HTTPNotFound()
        match = RANGE_RE.fullmatch(request.headers.get("Range", ""))
        if not match or not honour_range:
            return web.Response(body=content)
        start, end = int(match.group(1)), int(match.group(2))
        if start >= len(content):
            return web.Response(
                status=416, headers={"Content-Range": f"bytes */{len(content)}"}
            )
        end = min(end, len(content) - 1)
        return web.Response(
            status=206,
            body=content[start : end + 1],
            headers={"Content-Range": f"bytes {start}-{end}/{len(content)}"},
        )

    app = web.Application()
    app.router.add_get("/{name}", handler)
    return app


@pytest_asyncio.fixture
async def server_url(data):
    server = TestServer(make_app(data))
    await server.start_server()
    yield str(server.make_url("/"))
    await server.close()


@pytest_asyncio.fixture
async def no_range_server_url(data):
    server = TestServer(make_app(data, honour_range=False))
    await server.start_server()
    yield str(server.make_url("/"))
    await server.close()


# --- Metadata parsing ---


def test_parse_meta_content_range():
    meta = _parse_meta_from_headers(
        "f", {"Content-Range": "bytes 0-9/1234", "Content-Length": "10"}
    )
    assert meta["size"] == 1234


def test_parse_meta_content_length_case_insensitive():
    meta = _parse_meta_from_headers("f", {"content-length": "42", "etag": '"abc"'})
    assert meta["size"] == 42
    assert meta["e_tag"] == '"abc"'


def test_parse_meta_without_length():
    assert _parse_meta_from_headers("f", {})["size"] is None


# --- Against a local server ---


@pytest.mark.asyncio
async def test_head_async(server_url, data):
    async with AiohttpStore(server_url) as store:
        meta = await store.head_async("file.bin")
    assert meta["size"] == len(data)
    assert meta["path"] == "file.bin"


@pytest.mark.asyncio
async def test_get_async_streams_range(server_url, data):
    async with AiohttpStore(server_url, read_size=100) as store:
        result = await store.get_async("file.bin", options={"range": (10, 510)})
        assert isinstance(result, AiohttpGetResultAsync)
        assert result.range == (10, 510)
        assert result.meta["size"] == len(data)
        pieces = [piece async for piece in result]

    assert b"".join(pieces) == data[10:510]
    assert max(len(p) for p in pieces) <= 100


@pytest.mark.asyncio
async def test_get_async_without_session(server_url, data):
    """Without the context manager each result owns a temporary session."""
    store = AiohttpStore(server_url)
    result = await store.get_async("file.bin", options={"range": (0, 100)})
    assert await result.buffer_async() == data[:100]


@pytest.mark.asyncio
async def test_get_async_range_past_end(server_url, data):
    async with AiohttpStore(server_url) as store:
        with pytest.raises(aiohttp.ClientResponseError) as exc_info:
            await store.get_async(
                "file.bin", options={"range": (len(data), len(data) + 10)}
            )
    assert exc_info.value.status == 416
    assert is_range_exhausted(exc_info.value)


@pytest.mark.asyncio
async def test_get_async_ignored_range_rejected(no_range_server_url):
    async with AiohttpStore(no_range_server_url) as store:
        with pytest.raises(aiohttp.ClientPayloadError, match="ignored Range"):
            await store.get_async("file.bin", options={"range": (5, 10)})


@pytest.mark.asyncio
async def test_reader_over_http(server_url, data):
    async with AiohttpStore(server_url, read_size=256) as store:
        reader = await RangeStreamReader.open(store, "file.bin", chunk_size=3000)
        assert await reader.readall() == data


@pytest.mark.asyncio
async def test_reader_over_http_missing(server_url):
    async with AiohttpStore(server_url) as store:
        with pytest.raises(ObjectNotFoundError):
            await RangeStreamReader.open(store, "missing.bin")
