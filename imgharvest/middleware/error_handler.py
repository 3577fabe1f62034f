"""Global error hierarchy and FastAPI exception handlers.

All harvester-specific errors extend ScraperError. The FastAPI exception
handlers catch these errors (plus Pydantic's RequestValidationError and
unhandled exceptions) and return a flat JSON body: { error, diagnostics? }.
Diagnostics are only rendered when the app runs outside production.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class ScraperError(Exception):
    """Base error for all harvester-specific errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(ScraperError):
    """Missing or unsafe target URL, or a malformed request body."""

    status_code = 400
    message = "Validation error"


class TransportError(ScraperError):
    """Fetch timeout, oversized body, or an HTTP error status."""

    status_code = 502
    message = "Failed to fetch the target page"


class RenderLifecycleError(ScraperError):
    """Classified browser failure: crash, navigation timeout, launch failure."""

    status_code = 502
    message = "Browser rendering failed"


class ProbeError(ScraperError):
    """Per-image metadata probe failure. Always recovered locally."""

    status_code = 502
    message = "Image metadata probe failed"


class ScrapeFailedError(ScraperError):
    """Terminal failure after every permitted extraction phase failed."""

    status_code = 500
    message = "Failed to scrape the provided URL."


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _error_body(
    status_code: int,
    error: str,
    diagnostics: dict | None = None,
) -> JSONResponse:
    """Build a flat JSON error response."""
    content: dict = {"error": error}
    if diagnostics:
        content["diagnostics"] = diagnostics
    return JSONResponse(status_code=status_code, content=content)


def register_error_handlers(app: FastAPI, *, expose_diagnostics: bool = False) -> None:
    """Wire up all exception handlers on the FastAPI application.

    When *expose_diagnostics* is false, error details never leave the
    process; only the flat message is returned.
    """

    async def _scraper_error_handler(_request: Request, exc: ScraperError) -> JSONResponse:
        diagnostics = exc.details if (expose_diagnostics and exc.details) else None
        return _error_body(exc.status_code, exc.message, diagnostics)

    async def _validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        field_errors = [
            {
                "field": " -> ".join(str(loc) for loc in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in exc.errors()
        ]
        return _error_body(
            status_code=400,
            error="Invalid request",
            diagnostics={"fields": field_errors} if expose_diagnostics else None,
        )

    async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception: %s\n%s",
            exc,
            traceback.format_exc(),
        )
        return _error_body(status_code=500, error="Internal server error")

    app.add_exception_handler(ScraperError, _scraper_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
