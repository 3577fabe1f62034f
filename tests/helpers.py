"""Small builders shared by the unit and property tests."""

from __future__ import annotations

import io

import httpx
from PIL import Image


def png_bytes(width: int, height: int) -> bytes:
    """Encode a blank PNG of the given size."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


def image_transport(images: dict[str, bytes], content_type: str = "image/png") -> httpx.MockTransport:
    """Mock transport serving *images* by URL; anything else is a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = images.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        headers = {"content-type": content_type, "content-length": str(len(body))}
        if request.method == "HEAD":
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, headers=headers, content=body)

    return httpx.MockTransport(handler)
