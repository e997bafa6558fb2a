"""Best-effort upload of persisted artifacts.

Protocol:
1. POST <endpoint> {fileName, version, userId} -> {uploadUrl}
2. PUT <uploadUrl> with the raw compressed bytes (Content-Type: application/gzip)

Failures are logged and never retried here; the next chunk tries on its own.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import structlog

from crowdcode.config.models import UploadConfig
from crowdcode.core.errors import UploadError
from crowdcode.recording.consent import ConsentManager

logger = structlog.get_logger()


class Uploader:
    """Requests a short-lived write URL, then transfers bytes directly to it."""

    def __init__(
        self,
        config: UploadConfig,
        consent: ConsentManager,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._consent = consent
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._config.endpoint) and self._consent.has_consent()

    async def upload_file(self, path: Path) -> bool:
        if not self.enabled:
            return False
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.warning("upload_read_failed", path=str(path), error=str(e))
            return False
        return await self.upload_bytes(path.name, data)

    async def upload_bytes(self, file_name: str, data: bytes) -> bool:
        """Upload one artifact. Returns False when skipped or failed."""
        if not self._config.endpoint:
            logger.debug("upload_skipped", file_name=file_name, reason="no_endpoint")
            return False
        if not self._consent.has_consent():
            logger.debug("upload_skipped", file_name=file_name, reason="no_consent")
            return False

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                upload_url = await self._request_upload_url(client, file_name)
                await self._transfer(client, upload_url, file_name, data)
        except UploadError as e:
            logger.warning("upload_failed", **e.to_dict())
            return False

        logger.info("upload_complete", file_name=file_name, size=len(data))
        return True

    async def _request_upload_url(self, client: httpx.AsyncClient, file_name: str) -> str:
        assert self._config.endpoint is not None
        payload = {
            "fileName": file_name,
            "version": self._config.client_version,
            "userId": self._consent.user_id(),
        }
        try:
            response = await client.post(
                self._config.endpoint,
                json=payload,
                timeout=self._config.url_timeout_sec,
            )
            response.raise_for_status()
            upload_url = response.json()["uploadUrl"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise UploadError.url_issuance_failed(file_name, repr(e)) from e
        if not isinstance(upload_url, str) or not upload_url:
            raise UploadError.url_issuance_failed(file_name, "response has no uploadUrl")
        return upload_url

    async def _transfer(
        self, client: httpx.AsyncClient, upload_url: str, file_name: str, data: bytes
    ) -> None:
        try:
            response = await client.put(
                upload_url,
                content=data,
                headers={"Content-Type": "application/gzip"},
                timeout=self._config.transfer_timeout_sec,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UploadError.transfer_failed(file_name, repr(e)) from e
