"""Image extractors: static HTML parsing and headless rendering."""

from imgharvest.extractors.metadata import ImageProbe, MetadataEnricher, probe_image
from imgharvest.extractors.render import RenderExtractor, classify_render_failure
from imgharvest.extractors.static import StaticExtractor, parse_document

__all__ = [
    "ImageProbe",
    "MetadataEnricher",
    "RenderExtractor",
    "StaticExtractor",
    "classify_render_failure",
    "parse_document",
    "probe_image",
]
