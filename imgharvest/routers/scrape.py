"""Extraction endpoints.

- POST /api/scrape: extract images from one page
- GET  /api/download?imgUrl=...: download one image as an attachment
- GET  /api/logs: recent structured log entries (non-production only)
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import quote

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, Response

from imgharvest.config.settings import ScraperSettings
from imgharvest.logging_config import get_recent_logs
from imgharvest.middleware.error_handler import ValidationError
from imgharvest.models.requests import ScrapeRequest
from imgharvest.models.responses import ScrapeResponse
from imgharvest.services.downloader import ImageDownloader
from imgharvest.services.orchestrator import ExtractionOrchestrator
from imgharvest.validators.url_validator import validate_url

logger = logging.getLogger(__name__)

# How often an in-flight extraction checks whether its client is still there
DISCONNECT_POLL_SECONDS = 0.5

# Non-standard "client closed request" status, never seen by the client
CLIENT_CLOSED_REQUEST = 499


async def _run_until_disconnect(request: Request, task: asyncio.Task) -> bool:
    """Wait for *task*; cancel it if the client disconnects first.

    Returns ``True`` if the task finished, ``False`` if it was cancelled.
    """
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return True
            if await request.is_disconnected():
                task.cancel()
                await asyncio.wait({task})
                return False
    finally:
        if not task.done():
            task.cancel()


def create_scrape_router(
    *,
    orchestrator: ExtractionOrchestrator,
    downloader: ImageDownloader,
    settings: ScraperSettings,
) -> APIRouter:
    """Factory that creates the extraction router with injected dependencies."""
    scrape_router = APIRouter(prefix="/api", tags=["scrape"])
    expose_diagnostics = not settings.is_production

    @scrape_router.post("/scrape")
    async def scrape(body: ScrapeRequest, request: Request) -> Response:
        """Extract every image reference from ``body.url``."""
        if not await validate_url(body.url):
            raise ValidationError("URL not allowed")

        task = asyncio.create_task(
            orchestrator.scrape(body.url, lazy=body.lazy, mode=body.mode)
        )
        if not await _run_until_disconnect(request, task):
            logger.info(
                "Client disconnected, extraction cancelled for %s",
                body.url,
                extra={"target_url": body.url},
            )
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        outcome = task.result()
        response = ScrapeResponse.from_outcome(outcome, include_diagnostics=expose_diagnostics)
        return JSONResponse(content=response.to_body())

    @scrape_router.get("/download")
    async def download(img_url: str | None = Query(None, alias="imgUrl")) -> Response:
        """Download one image with a ``Content-Disposition: attachment`` header."""
        if not img_url or not img_url.strip():
            raise ValidationError("Missing imgUrl parameter")
        img_url = img_url.strip()
        if not await validate_url(img_url):
            raise ValidationError("URL not allowed")

        image = await downloader.download(img_url)
        return Response(
            content=image.content,
            media_type=image.content_type,
            headers={
                "Content-Disposition": f"attachment; filename*=UTF-8''{quote(image.filename)}",
            },
        )

    if expose_diagnostics:

        @scrape_router.get("/logs")
        async def recent_logs(
            limit: int = Query(50, ge=1, le=1000),
            level: str | None = Query(None),
        ) -> dict:
            """Recent entries from today's log file, newest first."""
            if not settings.log_dir:
                return {"logs": [], "count": 0}
            entries = get_recent_logs(settings.log_dir, limit=limit, level=level)
            return {"logs": entries, "count": len(entries)}

    return scrape_router
