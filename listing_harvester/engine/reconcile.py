"""Reconciliation of incoming candidates against the accumulated record set."""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from threading import Lock
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List

import structlog

from .identity import UNKNOWN_PREFECTURE, identity_key, richness_score
from .records import EPOCH, SCORE_FIELDS, AccumulatedRecord, CandidateRecord, coerce_datetime, utcnow

if TYPE_CHECKING:
    from ..infra.storage import RecordStorage

# Fields an incoming record may overwrite when it supplies a non-empty value.
_OVERWRITE_FIELDS = ("website", "phone", "address", "established_date", "employee_count", "capital")


def _copy(record: AccumulatedRecord) -> AccumulatedRecord:
    return replace(record, extra=dict(record.extra))


def _timestamp(record: CandidateRecord) -> datetime:
    return coerce_datetime(getattr(record, "last_analyzed", None)) or EPOCH


def should_replace(existing: CandidateRecord, incoming: CandidateRecord) -> bool:
    """Decide whether ``incoming`` supersedes ``existing``.

    A strictly newer ``last_analyzed`` always wins and an older one never
    does. Equal timestamps (including both absent) fall back to the richness
    score, with ties keeping the existing record.
    """

    existing_ts, incoming_ts = _timestamp(existing), _timestamp(incoming)
    if incoming_ts != existing_ts:
        return incoming_ts > existing_ts
    return richness_score(incoming) > richness_score(existing)


def merge_fields(existing: AccumulatedRecord, incoming: CandidateRecord) -> AccumulatedRecord:
    """Fold incoming detail into a copy of the existing record."""

    merged = _copy(existing)
    for name in _OVERWRITE_FIELDS:
        value = getattr(incoming, name)
        if value and str(value).strip():
            setattr(merged, name, value)
    if incoming.description and len(incoming.description) > len(existing.description or ""):
        merged.description = incoming.description
    for name in SCORE_FIELDS:
        value = getattr(incoming, name, None)
        if value is not None:
            setattr(merged, name, value)
    incoming_ts = coerce_datetime(getattr(incoming, "last_analyzed", None))
    if incoming_ts is not None and incoming_ts > _timestamp(merged):
        merged.last_analyzed = incoming_ts
    for key, value in incoming.extra.items():
        merged.extra.setdefault(key, value)
    return merged


@dataclass(slots=True)
class StoreStats:
    """Aggregates recomputed from the current accumulated set."""

    total_count: int = 0
    with_website: int = 0
    without_website: int = 0
    by_industry: Dict[str, int] = field(default_factory=dict)
    by_location: Dict[str, int] = field(default_factory=dict)
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "total_count": self.total_count,
            "with_website": self.with_website,
            "without_website": self.without_website,
            "by_industry": dict(self.by_industry),
            "by_location": dict(self.by_location),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


class ReconciliationStore:
    """Own the accumulated set; the only writer to durable storage."""

    def __init__(self, storage: "RecordStorage", logger: structlog.BoundLogger | None = None) -> None:
        self.storage = storage
        self.logger = logger or structlog.get_logger("listing_harvester.reconcile")
        self._lock = Lock()
        self._records: List[AccumulatedRecord] = storage.load()
        self._last_updated: datetime | None = storage.last_updated()

    def records(self) -> List[AccumulatedRecord]:
        with self._lock:
            return [_copy(record) for record in self._records]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def merge(self, incoming: Iterable[CandidateRecord]) -> List[AccumulatedRecord]:
        """Apply a batch of candidates and persist the resulting set."""

        with self._lock:
            by_key: Dict[str, AccumulatedRecord] = {}
            for record in self._records:
                by_key.setdefault(identity_key(record), _copy(record))

            inserted = replaced = skipped = 0
            for candidate in incoming:
                key = identity_key(candidate)
                existing = by_key.get(key)
                if existing is None:
                    by_key[key] = AccumulatedRecord.from_candidate(candidate)
                    inserted += 1
                elif should_replace(existing, candidate):
                    by_key[key] = merge_fields(existing, candidate)
                    replaced += 1
                else:
                    skipped += 1

            merged = sorted(by_key.values(), key=lambda record: record.name)
            self.storage.save(merged)
            self._records = merged
            self._last_updated = utcnow()
            self.logger.info(
                "records_merged",
                inserted=inserted,
                replaced=replaced,
                skipped=skipped,
                total=len(merged),
            )
            return [_copy(record) for record in merged]

    def stats(self) -> StoreStats:
        with self._lock:
            records = list(self._records)
            last_updated = self._last_updated
        with_website = sum(1 for record in records if record.has_website)
        industries = Counter(record.industry or "不明" for record in records)
        locations = Counter(record.location or UNKNOWN_PREFECTURE for record in records)
        return StoreStats(
            total_count=len(records),
            with_website=with_website,
            without_website=len(records) - with_website,
            by_industry=dict(industries),
            by_location=dict(locations),
            last_updated=last_updated,
        )

    def clear(self) -> None:
        with self._lock:
            self.storage.clear()
            self._records = []
            self._last_updated = None
        self.logger.info("records_cleared")

    def remove_where(self, predicate: Callable[[AccumulatedRecord], bool]) -> List[AccumulatedRecord]:
        """Drop matching records and return the remainder."""

        with self._lock:
            remainder = [record for record in self._records if not predicate(_copy(record))]
            removed = len(self._records) - len(remainder)
            if removed:
                self.storage.save(remainder)
                self._records = remainder
                self._last_updated = utcnow()
            self.logger.info("records_removed", removed=removed, total=len(remainder))
            return [_copy(record) for record in remainder]

    # ------------------------------------------------------------------
    def export_json(self) -> str:
        records = self.records()
        payload = {
            "export_date": utcnow().isoformat(),
            "stats": self.stats().to_dict(),
            "records": [record.to_dict() for record in records],
        }
        return json.dumps(payload, ensure_ascii=False, indent=2)

    def import_json(self, text: str) -> bool:
        """Merge records from an export document; False when it is malformed."""

        try:
            payload = json.loads(text)
            items = payload["records"]
            if not isinstance(items, list):
                raise TypeError("records must be a list")
            incoming = [AccumulatedRecord.from_dict(item) for item in items]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            self.logger.warning("import_rejected", error=str(exc))
            return False
        self.merge(incoming)
        return True


__all__ = ["ReconciliationStore", "StoreStats", "merge_fields", "should_replace"]
