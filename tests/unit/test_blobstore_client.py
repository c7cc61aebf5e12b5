from __future__ import annotations

import asyncio

import httpx
import pytest

from blobstore import BlobStoreClient, random_name
from common.errors import DownloadError, MalformedLocatorError, NotFoundError, UploadError
from locator import encode_direct, resolver_locator

from fake_portal import FakePortal, PORTAL


SKYLINK = encode_direct(b"\x00\x00" + b"\x42" * 32)


def _client(handler, **kwargs) -> BlobStoreClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=5.0)
    kwargs.setdefault("backoff", 0.0)
    return BlobStoreClient(PORTAL, client=http, **kwargs)


def test_upload_then_download_through_portal():
    portal = FakePortal()

    async def scenario():
        async with BlobStoreClient(PORTAL, client=portal.client(), backoff=0.0) as blobs:
            skylink = await blobs.upload(b"\x00binary\xffpayload", "my-file")
            return skylink, await blobs.download(skylink)

    skylink, data = asyncio.run(scenario())
    assert data == b"\x00binary\xffpayload"
    assert len(skylink) == 46

    upload_req = portal.requests[0]
    assert upload_req.url.path == "/skynet/skyfile"
    assert upload_req.url.params.get("filename") == "my-file"


def test_upload_uses_random_name_when_none_given():
    names = []

    def handler(request: httpx.Request) -> httpx.Response:
        names.append(request.url.params.get("filename"))
        return httpx.Response(200, json={"skylink": SKYLINK})

    async def scenario():
        async with _client(handler) as blobs:
            await blobs.upload(b"a")
            await blobs.upload(b"b")

    asyncio.run(scenario())
    assert len(names) == 2
    assert names[0] != names[1]
    assert len(random_name()) == 32


def test_upload_http_error_raises_upload_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(413, json={"message": "file too large"})

    async def scenario():
        async with _client(handler) as blobs:
            await blobs.upload(b"x", "f")

    with pytest.raises(UploadError) as ei:
        asyncio.run(scenario())
    assert "file too large" in str(ei.value)


def test_upload_exhausted_retries_raise_upload_error():
    calls = {"count": 0}

    def handler(_: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(502)

    async def scenario():
        async with _client(handler, max_attempts=2) as blobs:
            await blobs.upload(b"x", "f")

    with pytest.raises(UploadError):
        asyncio.run(scenario())
    assert calls["count"] == 2


@pytest.mark.parametrize("body", [{}, {"skylink": "not-a-skylink"}, {"skylink": resolver_locator(b"\x01" * 32)}])
def test_upload_without_usable_skylink_raises(body):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    async def scenario():
        async with _client(handler) as blobs:
            await blobs.upload(b"x", "f")

    with pytest.raises(UploadError):
        asyncio.run(scenario())


def test_download_missing_is_not_found():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "not found"})

    async def scenario():
        async with _client(handler) as blobs:
            await blobs.download(SKYLINK)

    with pytest.raises(NotFoundError) as ei:
        asyncio.run(scenario())
    assert not ei.value.retryable


def test_download_transport_failure_is_download_error_not_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow portal", request=request)

    async def scenario():
        async with _client(handler, max_attempts=2) as blobs:
            await blobs.download(SKYLINK)

    with pytest.raises(DownloadError) as ei:
        asyncio.run(scenario())
    assert not isinstance(ei.value, NotFoundError)
    assert ei.value.retryable


def test_download_rejects_malformed_locator_without_request():
    calls = {"count": 0}

    def handler(_: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(200, content=b"")

    async def scenario():
        async with _client(handler) as blobs:
            await blobs.download("../etc/passwd")

    with pytest.raises(MalformedLocatorError):
        asyncio.run(scenario())
    assert calls["count"] == 0
