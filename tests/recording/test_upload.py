"""Tests for recording/upload.py - two-step upload protocol."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from crowdcode.config.models import UploadConfig
from crowdcode.recording.consent import ConsentManager
from crowdcode.recording.upload import Uploader

ENDPOINT = "https://collect.example.com/upload-url"
UPLOAD_URL = "https://bucket.example.com/object?sig=abc"


class MemoryStore:
    def __init__(self, **data: Any) -> None:
        self.data = dict(data)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value


class FakeServer:
    """Records requests and answers like the collection service."""

    def __init__(self, *, url_status: int = 200, put_status: int = 200, body: Any = None) -> None:
        self.requests: list[httpx.Request] = []
        self.url_status = url_status
        self.put_status = put_status
        self.body = {"uploadUrl": UPLOAD_URL} if body is None else body

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return httpx.Response(self.url_status, json=self.body)
        return httpx.Response(self.put_status)


def _uploader(
    server: FakeServer, *, consent: str = "accepted", endpoint: str | None = ENDPOINT
) -> Uploader:
    store = MemoryStore(dataCollectionConsent=consent, userId="user-1")
    return Uploader(
        UploadConfig(endpoint=endpoint),
        ConsentManager(store),
        transport=httpx.MockTransport(server),
    )


class TestUploadProtocol:
    @pytest.mark.asyncio
    async def test_requests_url_then_puts_bytes(self) -> None:
        server = FakeServer()
        uploader = _uploader(server)

        ok = await uploader.upload_bytes("chunk-0000.json.gz", b"\x1f\x8bdata")

        assert ok is True
        post, put = server.requests
        assert post.method == "POST"
        assert str(post.url) == ENDPOINT
        payload = json.loads(post.content)
        assert payload == {"fileName": "chunk-0000.json.gz", "version": "2.0.0", "userId": "user-1"}
        assert put.method == "PUT"
        assert str(put.url) == UPLOAD_URL
        assert put.headers["Content-Type"] == "application/gzip"
        assert put.content == b"\x1f\x8bdata"

    @pytest.mark.asyncio
    async def test_upload_file_reads_from_disk(self, tmp_path: Path) -> None:
        server = FakeServer()
        path = tmp_path / "chunk.json.gz"
        path.write_bytes(b"payload")

        assert await _uploader(server).upload_file(path) is True
        assert server.requests[1].content == b"payload"


class TestSkipsAndFailures:
    @pytest.mark.asyncio
    async def test_no_consent_skips_silently(self) -> None:
        server = FakeServer()
        uploader = _uploader(server, consent="declined")

        assert uploader.enabled is False
        assert await uploader.upload_bytes("x", b"") is False
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_no_endpoint_skips_silently(self) -> None:
        server = FakeServer()
        assert await _uploader(server, endpoint=None).upload_bytes("x", b"") is False
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_url_issuance_failure(self) -> None:
        server = FakeServer(url_status=503)
        assert await _uploader(server).upload_bytes("x", b"") is False
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_malformed_url_response(self) -> None:
        server = FakeServer(body={"unexpected": True})
        assert await _uploader(server).upload_bytes("x", b"") is False
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_transfer_failure(self) -> None:
        server = FakeServer(put_status=403)
        assert await _uploader(server).upload_bytes("x", b"") is False
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        uploader = Uploader(
            UploadConfig(endpoint=ENDPOINT),
            ConsentManager(MemoryStore(dataCollectionConsent="accepted")),
            transport=httpx.MockTransport(refuse),
        )
        assert await uploader.upload_bytes("x", b"") is False

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        assert await _uploader(FakeServer()).upload_file(tmp_path / "gone.gz") is False
