from __future__ import annotations

import asyncio

import httpx

from conftest import JPEG_BYTES
from image_backfill import results
from image_backfill.fetcher import ImageFetcher


def download(handler, url="https://images.pexels.com/photos/1/a.jpeg", **kwargs):
    async def _go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await ImageFetcher(http, **kwargs).download(url)

    return asyncio.run(_go())


def test_returns_bytes_unmodified():
    result = download(lambda r: httpx.Response(200, content=JPEG_BYTES, headers={"content-type": "image/png"}))

    assert result.ok
    assert result.value == JPEG_BYTES


def test_non_2xx_is_download_error():
    result = download(lambda r: httpx.Response(403))

    assert result.status == results.ERROR
    assert result.kind == results.DOWNLOAD_ERROR
    assert "403" in result.reason


def test_transport_error_is_download_error():
    def handler(request):
        raise httpx.ConnectError("connection reset")

    assert download(handler).kind == results.DOWNLOAD_ERROR


def test_follows_redirects():
    def handler(request):
        if request.url.path == "/old.jpeg":
            return httpx.Response(302, headers={"location": "https://cdn.example/new.jpeg"})
        return httpx.Response(200, content=JPEG_BYTES)

    result = download(handler, url="https://cdn.example/old.jpeg")

    assert result.value == JPEG_BYTES


def test_oversized_image_is_rejected():
    result = download(lambda r: httpx.Response(200, content=b"x" * 2048), max_bytes=1024)

    assert result.kind == results.DOWNLOAD_ERROR
    assert "too large" in result.reason


def test_empty_body_is_rejected():
    assert download(lambda r: httpx.Response(200, content=b"")).kind == results.DOWNLOAD_ERROR
