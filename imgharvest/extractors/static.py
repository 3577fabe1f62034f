"""Static extraction: fetch raw HTML over HTTP(S) and parse it.

No page scripts run. Images are collected from ``<img>`` elements (with
optional lazy-attribute resolution), inline ``style`` backgrounds, inline
``<svg>``, image ``<object>`` elements, and icon / social-preview tags.
References resolve against ``<base href>`` when present, otherwise against
the (post-redirect) page URL.
"""

from __future__ import annotations

import logging
import time

import httpx
from bs4 import BeautifulSoup
from bs4.element import Tag

from imgharvest.extractors.common import (
    DEFAULT_HEADERS,
    ICON_RULES,
    LAZY_ATTRIBUTES,
    ImageCollector,
    css_urls,
    first_candidate,
    looks_like_image,
    parse_dimension,
    parse_sizes,
    resolve_url,
)
from imgharvest.extractors.metadata import MetadataEnricher
from imgharvest.middleware.error_handler import TransportError
from imgharvest.models.schemas import ExtractionResult, ImageRecord, ImageSource

logger = logging.getLogger(__name__)


def _attr(tag: Tag, name: str) -> str | None:
    value = tag.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    if value is None or not value.strip():
        return None
    return value


def _img_reference(img: Tag, lazy: bool) -> str | None:
    """Pick the URL an ``<img>`` displays: src, then lazy attributes, then srcset."""
    src = _attr(img, "src")
    if src:
        return src

    if lazy:
        for name in LAZY_ATTRIBUTES:
            value = _attr(img, name)
            if value:
                return first_candidate(value)

    srcset = _attr(img, "srcset")
    if srcset:
        return first_candidate(srcset)
    return None


def parse_document(
    markup: str | bytes,
    page_url: str,
    *,
    lazy: bool = True,
    from_encoding: str | None = None,
) -> tuple[ImageCollector, str]:
    """Collect image references from *markup*.

    Returns the populated collector and the serialized ``<head>`` (or ``""``).
    """
    if isinstance(markup, bytes):
        soup = BeautifulSoup(markup, "html.parser", from_encoding=from_encoding)
    else:
        soup = BeautifulSoup(markup, "html.parser")

    base_url = page_url
    base_tag = soup.find("base", href=True)
    if isinstance(base_tag, Tag):
        base_href = _attr(base_tag, "href")
        base_url = (resolve_url(page_url, base_href) if base_href else None) or page_url

    collector = ImageCollector(base_url)

    # 1. <img>
    for img in soup.find_all("img"):
        collector.add(_img_reference(img, lazy), ImageSource.IMG, alt=_attr(img, "alt"))

    # 2. Inline style backgrounds
    for element in soup.find_all(style=True):
        for reference in css_urls(_attr(element, "style") or ""):
            collector.add(reference, ImageSource.BACKGROUND)

    # 3. Inline SVG (outermost only)
    for svg in soup.find_all("svg"):
        if svg.find_parent("svg") is not None:
            continue
        collector.add_inline(
            ImageRecord.inline_svg(
                str(svg),
                parse_dimension(_attr(svg, "width")),
                parse_dimension(_attr(svg, "height")),
            )
        )

    # 4. <object data> images
    for obj in soup.find_all("object", attrs={"data": True}):
        data = _attr(obj, "data")
        if data and looks_like_image(data, _attr(obj, "type")):
            collector.add(data, ImageSource.OBJECT)

    # 5. Icons and social previews
    for rule in ICON_RULES:
        for element in soup.select(rule.selector):
            collector.add(
                _attr(element, rule.attribute),
                ImageSource.FAVICON,
                alt=rule.alt,
                size=parse_sizes(_attr(element, "sizes")),
            )

    head = str(soup.head) if soup.head is not None else ""
    return collector, head


class StaticExtractor:
    """Fetches a page without a browser and extracts its images."""

    def __init__(
        self,
        enricher: MetadataEnricher,
        *,
        timeout_seconds: float = 8.0,
        max_bytes: int = 5 * 1024 * 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._enricher = enricher
        self._timeout = timeout_seconds
        self._max_bytes = max_bytes
        self._transport = transport

    async def extract(self, url: str, lazy: bool = True) -> ExtractionResult:
        """Fetch *url*, collect its images, and probe their metadata.

        Raises :class:`TransportError` on timeouts, oversized bodies, and
        HTTP error statuses.
        """
        started = time.monotonic()
        body, final_url, charset = await self.fetch(url)
        collector, head = parse_document(body, final_url, lazy=lazy, from_encoding=charset)

        images = await self._enricher.enrich(collector.images)
        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            "Static extraction found %d images on %s",
            len(images),
            url,
            extra={
                "target_url": url,
                "method": "static",
                "image_count": len(images),
                "duration_ms": round(duration_ms),
            },
        )
        return ExtractionResult(images=images, head_content=head)

    async def fetch(self, url: str) -> tuple[bytes, str, str | None]:
        """GET *url* and return ``(body, final_url, charset)``."""
        try:
            async with httpx.AsyncClient(
                headers=DEFAULT_HEADERS,
                follow_redirects=True,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        reason = response.reason_phrase or ""
                        raise TransportError(
                            f"HTTP {response.status_code} {reason}".strip(),
                            http_status=response.status_code,
                        )

                    declared = response.headers.get("content-length", "")
                    if declared.isdigit() and int(declared) > self._max_bytes:
                        raise TransportError(self._too_large_message())

                    body = bytearray()
                    async for chunk in response.aiter_bytes():
                        body += chunk
                        if len(body) > self._max_bytes:
                            raise TransportError(self._too_large_message())

                    return bytes(body), str(response.url), response.charset_encoding
        except httpx.TimeoutException as exc:
            raise TransportError(f"Timed out fetching {url} after {self._timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Request failed for {url}: {exc}") from exc

    def _too_large_message(self) -> str:
        mib, rest = divmod(self._max_bytes, 1024 * 1024)
        limit = f"{mib}MB" if mib and not rest else f"{self._max_bytes} bytes"
        return f"Response exceeds {limit} limit"
