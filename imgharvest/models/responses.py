"""Response models for the harvester API.

Success bodies use camelCase keys:
{ images, headContent, method, fallbackUsed, totalImages, warning?, diagnostics? }
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from imgharvest.models.schemas import ExtractionMethod, ImageRecord, ScrapeOutcome


class ScrapeResponse(BaseModel):
    """JSON body returned by a successful extraction."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    images: list[ImageRecord]
    head_content: str
    method: ExtractionMethod
    fallback_used: bool
    total_images: int
    warning: str | None = None
    diagnostics: dict | None = None

    @classmethod
    def from_outcome(
        cls, outcome: ScrapeOutcome, *, include_diagnostics: bool = False
    ) -> "ScrapeResponse":
        return cls(
            images=outcome.result.images,
            head_content=outcome.result.head_content,
            method=outcome.method,
            fallback_used=outcome.fallback_used,
            total_images=outcome.result.image_count,
            warning=outcome.warning,
            diagnostics=outcome.diagnostics.to_dict() if include_diagnostics else None,
        )

    def to_body(self) -> dict:
        """Serialize with camelCase keys, omitting unset optional fields."""
        body = self.model_dump(mode="json", by_alias=True)
        for key in ("warning", "diagnostics"):
            if body.get(key) is None:
                body.pop(key, None)
        body["images"] = [
            image.model_dump(mode="json", exclude_none=True) for image in self.images
        ]
        return body
