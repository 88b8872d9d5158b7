"""Extractor interface shared by API and scrape sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from ...config import RECORD_FIELDS, ExtractorConfig
from ..identity import UNKNOWN_PREFECTURE, extract_prefecture
from ..records import CandidateRecord


@dataclass(slots=True, frozen=True)
class ExtractionContext:
    """Where a payload came from."""

    source_name: str
    url: str
    page: int = 1
    per_page: int = 50


_TRUTHY = {"1", "true", "yes", "y", "on", "上場", "○"}


def _clean(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


class SourceExtractor(ABC):
    """Turn raw fetched content into candidate records.

    Implementations must be pure: no network or cache access. An empty list
    is a valid answer, and malformed input degrades to an empty list.
    """

    def __init__(self, config: ExtractorConfig) -> None:
        self.config = config

    @abstractmethod
    def extract(self, raw_content: str, context: ExtractionContext) -> List[CandidateRecord]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    def build_record(
        self, values: Mapping[str, Any], context: ExtractionContext
    ) -> CandidateRecord | None:
        """Assemble a record from raw field values, or None when nameless."""

        merged: Dict[str, Any] = dict(self.config.defaults)
        merged.update({key: value for key, value in values.items() if _clean(value) is not None})
        name = _clean(merged.get("name"))
        if name is None:
            return None

        record = CandidateRecord(name=name, source_name=context.source_name)
        for field in RECORD_FIELDS:
            if field in ("name", "is_listed"):
                continue
            setattr(record, field, _clean(merged.get(field)))
        listed = merged.get("is_listed")
        record.is_listed = listed if isinstance(listed, bool) else str(listed).strip().lower() in _TRUTHY
        if record.location is None and record.address:
            prefecture = extract_prefecture(record.address)
            if prefecture != UNKNOWN_PREFECTURE:
                record.location = prefecture
        return record


__all__ = ["ExtractionContext", "SourceExtractor"]
