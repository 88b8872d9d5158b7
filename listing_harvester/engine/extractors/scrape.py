"""Regex cascade extractor for scraped listing pages."""

from __future__ import annotations

import html
import re
from typing import Dict, List, Pattern, Tuple

import structlog
from selectolax.lexbor import LexborHTMLParser

from ...config import ExtractorConfig
from ...errors import ConfigurationError
from ..records import CandidateRecord
from .base import ExtractionContext, SourceExtractor

logger = structlog.get_logger("listing_harvester.extractors")

_FLAGS = re.IGNORECASE | re.DOTALL
_SPACES = re.compile(r"\s+")

CompiledStrategy = Tuple[str, Pattern[str], Dict[str, List[Pattern[str]]]]


def fragment_text(fragment: str) -> str:
    """Reduce an HTML fragment to whitespace-collapsed plain text."""

    if "<" in fragment:
        text = LexborHTMLParser(fragment).text(separator=" ")
    else:
        text = html.unescape(fragment)
    return _SPACES.sub(" ", text).strip()


def _captured(match: re.Match[str]) -> str:
    if match.re.groups:
        return match.group(1) or ""
    return match.group(0)


class PatternExtractor(SourceExtractor):
    """Try each configured strategy in order; the first one yielding records wins."""

    def __init__(self, config: ExtractorConfig) -> None:
        super().__init__(config)
        self._strategies: List[CompiledStrategy] = []
        for strategy in config.strategies:
            try:
                block = re.compile(strategy.block, _FLAGS)
                fields = {
                    field: [re.compile(pattern, _FLAGS) for pattern in patterns]
                    for field, patterns in strategy.fields.items()
                }
            except re.error as exc:
                raise ConfigurationError(
                    f"Invalid pattern in strategy '{strategy.name}': {exc}"
                ) from exc
            self._strategies.append((strategy.name, block, fields))

    def extract(self, raw_content: str, context: ExtractionContext) -> List[CandidateRecord]:
        if not raw_content:
            return []
        for name, block, fields in self._strategies:
            records = self._apply(name, block, fields, raw_content, context)
            if records:
                logger.debug(
                    "strategy_matched",
                    source=context.source_name,
                    strategy=name,
                    count=len(records),
                )
                return records
        logger.debug("no_strategy_matched", source=context.source_name, url=context.url)
        return []

    def _apply(
        self,
        name: str,
        block: Pattern[str],
        fields: Dict[str, List[Pattern[str]]],
        raw_content: str,
        context: ExtractionContext,
    ) -> List[CandidateRecord]:
        records: List[CandidateRecord] = []
        seen: set[str] = set()
        for match in block.finditer(raw_content):
            fragment = _captured(match)
            values: Dict[str, str] = {}
            for field, patterns in fields.items():
                for pattern in patterns:
                    found = pattern.search(fragment)
                    if found is None:
                        continue
                    text = fragment_text(_captured(found))
                    if text:
                        values[field] = text
                        break
            record = self.build_record(values, context)
            if record is None or record.name in seen:
                continue
            seen.add(record.name)
            record.extra["strategy"] = name
            records.append(record)
            if len(records) >= context.per_page:
                break
        return records


__all__ = ["PatternExtractor", "fragment_text"]
