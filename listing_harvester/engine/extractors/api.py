"""Extractors for structured API payloads (JSON documents and delimited text)."""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, List

import structlog

from ...config import RECORD_FIELDS
from ..records import CandidateRecord
from .base import ExtractionContext, SourceExtractor

logger = structlog.get_logger("listing_harvester.extractors")


def _lookup(item: Dict[str, Any], dotted: str) -> Any:
    current: Any = item
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


class JsonApiExtractor(SourceExtractor):
    """Map JSON API rows onto candidate records through a field alias table.

    The row list is the top-level array, or the value under the first key of
    ``records_path`` present in the document. Aliases may be dotted paths
    (``location.address``) into nested objects.
    """

    def extract(self, raw_content: str, context: ExtractionContext) -> List[CandidateRecord]:
        try:
            document = json.loads(raw_content)
        except (RecursionError, TypeError, ValueError) as exc:
            logger.warning("json_decode_failed", source=context.source_name, url=context.url, error=str(exc))
            return []

        rows = self._rows(document)
        records: List[CandidateRecord] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            values = {
                field: self._first_alias(row, field) if field in self.config.field_map else row.get(field)
                for field in RECORD_FIELDS
            }
            record = self.build_record(values, context)
            if record is not None:
                records.append(record)
        return records

    def _rows(self, document: Any) -> list:
        if isinstance(document, list):
            return document
        if isinstance(document, dict):
            for key in self.config.records_path:
                rows = document.get(key)
                if isinstance(rows, list):
                    return rows
        return []

    def _first_alias(self, row: Dict[str, Any], field: str) -> Any:
        for alias in self.config.field_map.get(field, []):
            value = _lookup(row, alias)
            if value is not None and str(value).strip():
                return value
        return None


class DelimitedTextExtractor(SourceExtractor):
    """Registry-style CSV payloads where columns are addressed by index."""

    def extract(self, raw_content: str, context: ExtractionContext) -> List[CandidateRecord]:
        if not raw_content or not raw_content.strip():
            return []
        reader = csv.reader(io.StringIO(raw_content), delimiter=self.config.delimiter)
        records: List[CandidateRecord] = []
        try:
            for index, row in enumerate(reader):
                if index == 0 and self.config.skip_header:
                    continue
                values = {
                    field: row[column]
                    for field, column in self.config.columns.items()
                    if 0 <= column < len(row)
                }
                record = self.build_record(values, context)
                if record is not None:
                    records.append(record)
        except csv.Error as exc:
            logger.warning("csv_parse_failed", source=context.source_name, url=context.url, error=str(exc))
        return records


__all__ = ["DelimitedTextExtractor", "JsonApiExtractor"]
