"""Pydantic request models for the harvester API."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class ExtractionMode(str, Enum):
    """Requested extraction strategy."""

    STATIC = "static"
    DYNAMIC = "dynamic"
    AUTO = "auto"


class ScrapeRequest(BaseModel):
    """Request model for a single-page image extraction."""

    url: str = Field(..., min_length=1)
    lazy: bool = True
    mode: ExtractionMode = ExtractionMode.AUTO

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("No url provided")
        return value
