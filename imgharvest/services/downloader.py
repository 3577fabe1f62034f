"""Single-image download for the ``/api/download`` endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from imgharvest.extractors.common import DEFAULT_HEADERS, file_name
from imgharvest.middleware.error_handler import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadedImage:
    content: bytes
    content_type: str
    filename: str


class ImageDownloader:
    """Fetches one image with the same timeout and size cap as page fetches."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 8.0,
        max_bytes: int = 5 * 1024 * 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._max_bytes = max_bytes
        self._transport = transport

    async def download(self, url: str) -> DownloadedImage:
        """Fetch *url*; raises :class:`TransportError` on any failure."""
        try:
            async with httpx.AsyncClient(
                headers=DEFAULT_HEADERS,
                follow_redirects=True,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise TransportError(
                            "Failed to download image",
                            http_status=response.status_code,
                        )
                    body = bytearray()
                    async for chunk in response.aiter_bytes():
                        body += chunk
                        if len(body) > self._max_bytes:
                            raise TransportError("Image exceeds download size limit")
                    content_type = response.headers.get("content-type") or "application/octet-stream"
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.warning("Image download failed for %s: %s", url, exc, extra={"target_url": url})
            raise TransportError("Failed to download image", reason=str(exc)) from exc

        return DownloadedImage(
            content=bytes(body),
            content_type=content_type,
            filename=file_name(url),
        )
