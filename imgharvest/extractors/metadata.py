"""Image metadata probing.

``probe_image`` streams just enough of an image to learn its dimensions and
format: raster formats go through Pillow's incremental parser, SVGs are
sniffed from the root element's ``width``/``height``/``viewBox``. Byte length
comes from ``Content-Length`` when the server sends it.

``MetadataEnricher`` runs the size guard and probe for every remote record
of an extraction. Probe failures never fail the extraction; the record keeps
an extension-derived type and unknown dimensions.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

import httpx
from PIL import Image, ImageFile

from imgharvest.extractors.common import DEFAULT_HEADERS, extension_type
from imgharvest.middleware.error_handler import ProbeError
from imgharvest.models.schemas import ImageRecord

logger = logging.getLogger(__name__)

# Pillow format names that differ from the conventional file type
_FORMAT_TYPES = {"JPEG": "jpg", "MPO": "jpg", "TIFF": "tiff"}

_SVG_ROOT = re.compile(rb"<svg\b[^>]*>", re.IGNORECASE | re.DOTALL)
_SVG_ATTR = r"""(?<![-\w]){name}\s*=\s*["']\s*([0-9.]+)"""
_SVG_VIEWBOX = re.compile(
    rb"""\bviewBox\s*=\s*["']\s*[-0-9.]+[\s,]+[-0-9.]+[\s,]+([0-9.]+)[\s,]+([0-9.]+)""",
    re.IGNORECASE,
)

# Upper bound on bytes read while looking for an SVG root element
_SVG_SNIFF_BYTES = 64 * 1024


@dataclass(frozen=True)
class ImageProbe:
    """Dimensions, type, and byte length of a remote image."""

    width: int
    height: int
    type: str
    length: int | None


def _content_length(headers: httpx.Headers) -> int | None:
    raw = headers.get("content-length", "")
    return int(raw) if raw.isdigit() else None


def _svg_dimensions(head: bytes) -> tuple[int, int] | None:
    root = _SVG_ROOT.search(head)
    if root is None:
        return None
    tag = root.group(0)

    width = re.search(_SVG_ATTR.format(name="width").encode(), tag, re.IGNORECASE)
    height = re.search(_SVG_ATTR.format(name="height").encode(), tag, re.IGNORECASE)
    if width and height:
        return round(float(width.group(1))), round(float(height.group(1)))

    viewbox = _SVG_VIEWBOX.search(tag)
    if viewbox:
        return round(float(viewbox.group(1))), round(float(viewbox.group(2)))
    return None


def _is_svg(url: str, content_type: str) -> bool:
    return "svg" in content_type.lower() or extension_type(url) == "svg"


async def probe_image(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float = 10.0,
    max_bytes: int = 5 * 1024 * 1024,
) -> ImageProbe:
    """Fetch the start of *url* and report its dimensions and format.

    Raises :class:`ProbeError` when the image cannot be fetched or decoded.
    """
    try:
        async with client.stream("GET", url, timeout=timeout) as response:
            if response.status_code >= 400:
                raise ProbeError(f"HTTP {response.status_code} for {url}")

            declared = _content_length(response.headers)
            svg = _is_svg(url, response.headers.get("content-type", ""))
            parser = ImageFile.Parser()
            head = bytearray()
            read = 0
            exhausted = True

            async for chunk in response.aiter_bytes():
                read += len(chunk)
                if svg:
                    head += chunk
                    if _SVG_ROOT.search(head) or len(head) >= _SVG_SNIFF_BYTES:
                        exhausted = False
                        break
                else:
                    parser.feed(chunk)
                    if parser.image is not None:
                        exhausted = False
                        break
                if read >= max_bytes:
                    exhausted = False
                    break
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise ProbeError(f"Probe request failed for {url}: {exc}") from exc
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ProbeError(f"Unreadable image at {url}: {exc}") from exc

    length = declared if declared is not None else (read if exhausted else None)

    if svg:
        dimensions = _svg_dimensions(bytes(head))
        if dimensions is None:
            raise ProbeError(f"SVG without dimensions at {url}")
        return ImageProbe(width=dimensions[0], height=dimensions[1], type="svg", length=length)

    image = parser.image
    if image is None or not image.format:
        raise ProbeError(f"Unrecognized image format at {url}")

    width, height = image.size
    image_type = _FORMAT_TYPES.get(image.format, image.format.lower())
    return ImageProbe(width=width, height=height, type=image_type, length=length)


class MetadataEnricher:
    """Fills in width, height, type, and size for remote image records.

    Each unique URL gets a best-effort HEAD request first; a declared size
    above ``max_bytes`` skips the probe. Probes run concurrently up to
    ``concurrency`` at a time.
    """

    def __init__(
        self,
        *,
        head_timeout_seconds: float = 8.0,
        probe_timeout_seconds: float = 10.0,
        max_bytes: int = 5 * 1024 * 1024,
        concurrency: int = 8,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._head_timeout = head_timeout_seconds
        self._probe_timeout = probe_timeout_seconds
        self._max_bytes = max_bytes
        self._concurrency = concurrency
        self._transport = transport

    async def enrich(self, records: list[ImageRecord]) -> list[ImageRecord]:
        """Probe every remote record in place and return *records*."""
        remote = [r for r in records if not r.inline and r.url]
        if not remote:
            return records

        semaphore = asyncio.Semaphore(self._concurrency)
        async with httpx.AsyncClient(
            headers=DEFAULT_HEADERS,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            await asyncio.gather(
                *(self._enrich_one(client, semaphore, record) for record in remote)
            )
        return records

    async def _enrich_one(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        record: ImageRecord,
    ) -> None:
        url = record.url or ""
        async with semaphore:
            declared = await self._head_length(client, url)
            if declared is not None and declared > self._max_bytes:
                logger.debug("Skipping probe for oversized image %s (%d bytes)", url, declared)
                record.size = declared
                record.type = extension_type(url) or record.type
                return

            try:
                probe = await probe_image(
                    client, url, timeout=self._probe_timeout, max_bytes=self._max_bytes
                )
            except ProbeError as exc:
                logger.debug("Probe failed for %s: %s", url, exc)
                record.type = extension_type(url) or record.type
                return

        record.width = probe.width
        record.height = probe.height
        record.type = probe.type
        if probe.length is not None:
            record.size = probe.length

    async def _head_length(self, client: httpx.AsyncClient, url: str) -> int | None:
        try:
            response = await client.head(url, timeout=self._head_timeout)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError):
            return None
        return _content_length(response.headers)
