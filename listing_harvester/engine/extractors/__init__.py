"""Extractor implementations and factory."""

from __future__ import annotations

from ...config import ExtractorConfig, SourceDescriptor
from .api import DelimitedTextExtractor, JsonApiExtractor
from .base import ExtractionContext, SourceExtractor
from .scrape import PatternExtractor, fragment_text

_REGISTRY = {
    "json": JsonApiExtractor,
    "delimited": DelimitedTextExtractor,
    "pattern": PatternExtractor,
}


def build_extractor(target: SourceDescriptor | ExtractorConfig) -> SourceExtractor:
    """Instantiate the extractor declared for a source."""

    config = target.extractor if isinstance(target, SourceDescriptor) else target
    return _REGISTRY[config.type](config)


__all__ = [
    "DelimitedTextExtractor",
    "ExtractionContext",
    "JsonApiExtractor",
    "PatternExtractor",
    "SourceExtractor",
    "build_extractor",
    "fragment_text",
]
