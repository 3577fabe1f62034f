"""Public models for the harvester service."""

from imgharvest.models.requests import ExtractionMode, ScrapeRequest
from imgharvest.models.responses import ScrapeResponse
from imgharvest.models.schemas import (
    UNKNOWN,
    ExtractionMethod,
    ExtractionResult,
    ImageRecord,
    ImageSource,
    PhaseDiagnostics,
    ScrapeOutcome,
)

__all__ = [
    "UNKNOWN",
    "ExtractionMethod",
    "ExtractionMode",
    "ExtractionResult",
    "ImageRecord",
    "ImageSource",
    "PhaseDiagnostics",
    "ScrapeOutcome",
    "ScrapeRequest",
    "ScrapeResponse",
]
