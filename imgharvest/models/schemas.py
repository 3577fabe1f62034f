"""Extraction result schemas.

``ImageRecord`` is either an inline SVG (markup carried in ``content``) or a
remote reference identified by its resolved URL. Dimensions, type, and size
stay ``"unknown"`` until a metadata probe fills them in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel

UNKNOWN = "unknown"


class ImageSource(str, Enum):
    """Where on the page a remote image reference was found."""

    IMG = "img"
    OBJECT = "object"
    FAVICON = "favicon"
    BACKGROUND = "background"


class ExtractionMethod(str, Enum):
    """Which extraction strategy produced a result."""

    STATIC = "static"
    DYNAMIC = "dynamic"


class ImageRecord(BaseModel):
    """One discovered image."""

    url: str | None = None
    inline: bool = False
    content: str | None = None
    width: int | str = UNKNOWN
    height: int | str = UNKNOWN
    type: str = UNKNOWN
    size: int | str = UNKNOWN
    filename: str | None = None
    alt: str | None = None
    source: ImageSource | None = None

    @classmethod
    def inline_svg(
        cls,
        markup: str,
        width: int | str | None = None,
        height: int | str | None = None,
    ) -> "ImageRecord":
        return cls(
            inline=True,
            content=markup,
            width=width or UNKNOWN,
            height=height or UNKNOWN,
            type="svg",
            size=len(markup.encode("utf-8")),
        )


@dataclass
class ExtractionResult:
    """Images found on one page plus the page's ``<head>`` markup."""

    images: list[ImageRecord] = field(default_factory=list)
    head_content: str = ""

    @property
    def image_count(self) -> int:
        return len(self.images)


@dataclass
class PhaseDiagnostics:
    """Attempt/success/error state of both extraction phases."""

    static_attempted: bool = False
    static_success: bool = False
    static_error: str | None = None
    dynamic_attempted: bool = False
    dynamic_success: bool = False
    dynamic_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "staticAttempted": self.static_attempted,
            "staticSuccess": self.static_success,
            "staticError": self.static_error,
            "dynamicAttempted": self.dynamic_attempted,
            "dynamicSuccess": self.dynamic_success,
            "dynamicError": self.dynamic_error,
        }


@dataclass
class ScrapeOutcome:
    """Resolved result of one extraction request."""

    method: ExtractionMethod
    fallback_used: bool
    result: ExtractionResult
    diagnostics: PhaseDiagnostics = field(default_factory=PhaseDiagnostics)
    warning: str | None = None
