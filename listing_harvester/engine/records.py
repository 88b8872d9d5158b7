"""Record types flowing from extractors into the reconciliation store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

SCORE_FIELDS = ("overall_score", "technical_score", "eeat_score", "content_score")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_datetime(value: object) -> datetime | None:
    """Best-effort conversion of stored timestamps to aware UTC datetimes."""

    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        numeric = float(value)
        if numeric > 1_000_000_000_000:  # assume milliseconds
            numeric /= 1000.0
        return datetime.fromtimestamp(numeric, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            for fmt in ("%Y/%m/%d %H:%M:%S", "%Y/%m/%d %H:%M", "%Y/%m/%d"):
                try:
                    dt = datetime.strptime(text, fmt)
                except ValueError:
                    continue
                break
            else:
                return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _coerce_score(value: object) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


@dataclass(slots=True)
class CandidateRecord:
    """A business listing as produced by one extractor pass."""

    name: str
    address: str | None = None
    location: str | None = None
    industry: str | None = None
    phone: str | None = None
    website: str | None = None
    employee_count: str | None = None
    capital: str | None = None
    established_date: str | None = None
    description: str | None = None
    is_listed: bool = False
    source_name: str | None = None
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def has_website(self) -> bool:
        return bool(self.website and self.website.strip())


@dataclass(slots=True)
class AccumulatedRecord(CandidateRecord):
    """A reconciled record living in the durable accumulated set."""

    last_analyzed: datetime | None = None
    overall_score: float | None = None
    technical_score: float | None = None
    eeat_score: float | None = None
    content_score: float | None = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        # naive timestamps are taken as UTC so comparisons never mix kinds
        self.last_analyzed = coerce_datetime(self.last_analyzed)
        self.created_at = coerce_datetime(self.created_at) or utcnow()

    @classmethod
    def from_candidate(
        cls, candidate: CandidateRecord, *, created_at: datetime | None = None
    ) -> "AccumulatedRecord":
        if isinstance(candidate, AccumulatedRecord):
            return replace(candidate, extra=dict(candidate.extra))
        values = {f.name: getattr(candidate, f.name) for f in fields(CandidateRecord)}
        values["extra"] = dict(candidate.extra)
        return cls(**values, created_at=created_at or utcnow())

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["last_analyzed"] = self.last_analyzed.isoformat() if self.last_analyzed else None
        payload["created_at"] = self.created_at.isoformat()
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AccumulatedRecord":
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in payload.items() if key in known}
        name = str(values.get("name") or "").strip()
        if not name:
            raise ValueError("record payload is missing a name")
        values["name"] = name
        values["extra"] = {str(k): str(v) for k, v in (values.get("extra") or {}).items()}
        values["is_listed"] = bool(values.get("is_listed", False))
        values["last_analyzed"] = coerce_datetime(values.get("last_analyzed"))
        values["created_at"] = coerce_datetime(values.get("created_at")) or utcnow()
        for score in SCORE_FIELDS:
            values[score] = _coerce_score(values.get(score))
        return cls(**values)


class RunState(str, Enum):
    """Lifecycle of an orchestration run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(slots=True)
class BackgroundFetchStatus:
    """Progress of the current (or last) orchestration run."""

    is_running: bool = False
    completed_sources: int = 0
    total_sources: int = 0
    last_update: datetime = field(default_factory=utcnow)
    errors: list[str] = field(default_factory=list)
    state: RunState = RunState.IDLE
    current_message: str = ""

    def snapshot(self) -> "BackgroundFetchStatus":
        return replace(self, errors=list(self.errors))


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """One progress notification as delivered to polling observers."""

    message: str
    current: int
    total: int
    timestamp: datetime = field(default_factory=utcnow)


__all__ = [
    "AccumulatedRecord",
    "BackgroundFetchStatus",
    "CandidateRecord",
    "EPOCH",
    "ProgressEvent",
    "RunState",
    "SCORE_FIELDS",
    "coerce_datetime",
    "utcnow",
]
