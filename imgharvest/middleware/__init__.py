"""Middleware package: error hierarchy and request ID."""

from imgharvest.middleware.error_handler import (
    ProbeError,
    RenderLifecycleError,
    ScrapeFailedError,
    ScraperError,
    TransportError,
    ValidationError,
    register_error_handlers,
)
from imgharvest.middleware.request_id import RequestIdMiddleware, request_id_var

__all__ = [
    "ProbeError",
    "RenderLifecycleError",
    "RequestIdMiddleware",
    "ScrapeFailedError",
    "ScraperError",
    "TransportError",
    "ValidationError",
    "register_error_handlers",
    "request_id_var",
]
