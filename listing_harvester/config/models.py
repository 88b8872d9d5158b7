"""Pydantic models used across listing-harvester configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

# Fields a CandidateRecord exposes to extractor mappings.
RECORD_FIELDS = (
    "name",
    "address",
    "location",
    "industry",
    "phone",
    "website",
    "employee_count",
    "capital",
    "established_date",
    "description",
    "is_listed",
)


class SourceKind(str, Enum):
    """How a source is reached."""

    API = "api"
    SCRAPE = "scrape"


class ScheduleType(str, Enum):
    """Scheduler modes for periodic background runs."""

    CRON = "cron"
    INTERVAL = "interval"
    ONCE = "once"


class FetchConfig(BaseModel):
    """Politeness and retry settings for the page fetcher. Durations are seconds."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = 3
    retry_delay: float = 2.0
    min_request_interval: float = 3.0
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0

    @model_validator(mode="after")
    def _validate_ranges(self) -> "FetchConfig":
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")
        if self.min_request_interval < 0:
            raise ValueError("min_request_interval must be >= 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        return self


class PatternStrategy(BaseModel):
    """One step of a regex extraction cascade.

    ``block`` isolates one listing per match (first group, or the whole match
    when the pattern has no groups). ``fields`` maps record fields to patterns
    tried in order inside the block; the first group of the first matching
    pattern is used.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    block: str
    fields: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("fields", mode="before")
    @classmethod
    def _coerce_patterns(cls, value: Any) -> dict[str, list[str]]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("fields expects a mapping of field -> pattern(s)")
        coerced: dict[str, list[str]] = {}
        for field, patterns in value.items():
            if field not in RECORD_FIELDS:
                raise ValueError(f"Unknown record field: {field}")
            coerced[field] = [patterns] if isinstance(patterns, str) else list(patterns)
        return coerced

    @model_validator(mode="after")
    def _require_name(self) -> "PatternStrategy":
        if "name" not in self.fields:
            raise ValueError(f"Strategy '{self.name}' must define a name pattern")
        return self


class ExtractorConfig(BaseModel):
    """Declarative description of the extractor bound to a source."""

    model_config = ConfigDict(frozen=True)

    type: Literal["json", "delimited", "pattern"] = "json"
    records_path: list[str] = Field(default_factory=lambda: ["companies", "results", "data"])
    field_map: dict[str, list[str]] = Field(default_factory=dict)
    columns: dict[str, int] = Field(default_factory=dict)
    delimiter: str = ","
    skip_header: bool = True
    strategies: list[PatternStrategy] = Field(default_factory=list)
    defaults: dict[str, str] = Field(default_factory=dict)

    @field_validator("field_map", mode="before")
    @classmethod
    def _coerce_aliases(cls, value: Any) -> dict[str, list[str]]:
        if value is None:
            return {}
        return {
            field: [aliases] if isinstance(aliases, str) else list(aliases)
            for field, aliases in dict(value).items()
        }

    @model_validator(mode="after")
    def _validate_shape(self) -> "ExtractorConfig":
        unknown = (set(self.field_map) | set(self.columns)) - set(RECORD_FIELDS)
        if unknown:
            raise ValueError(f"Unknown record field(s): {sorted(unknown)}")
        if self.type == "pattern" and not self.strategies:
            raise ValueError("pattern extractor requires at least one strategy")
        if self.type == "delimited" and "name" not in self.columns:
            raise ValueError("delimited extractor requires a name column")
        return self


class SourceDescriptor(BaseModel):
    """Catalog entry describing one listing source."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: SourceKind
    url: str
    description: str = ""
    enabled: bool = True
    priority: int = 100
    max_pages: int = 1
    per_page: int = 50
    params: dict[str, str] = Field(default_factory=dict)
    page_param: str | None = "page"
    per_page_param: str | None = "limit"
    fetch: FetchConfig | None = None
    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)

    @field_validator("params", mode="before")
    @classmethod
    def _stringify_params(cls, value: Any) -> dict[str, str]:
        if value is None:
            return {}
        return {str(key): str(item) for key, item in dict(value).items()}

    @model_validator(mode="after")
    def _validate_paging(self) -> "SourceDescriptor":
        if not self.name.strip():
            raise ValueError("name cannot be empty")
        if self.max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        if self.per_page < 1:
            raise ValueError("per_page must be >= 1")
        return self


class ScheduleConfig(BaseModel):
    """Configuration describing when background runs should be triggered."""

    type: ScheduleType = Field(default=ScheduleType.INTERVAL)
    value: Any = Field(
        default=86400,
        description="Cron expression, interval seconds or ISO datetime, depending on type.",
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL and not isinstance(self.value, (int, float, dict)):
            raise ValueError("Interval schedule requires seconds (int/float) or kwargs dict")
        if (
            self.type is ScheduleType.ONCE
            and self.value is not None
            and not isinstance(self.value, str)
        ):
            raise ValueError("Once schedule expects ISO datetime string or null")
        return self


class StorageConfig(BaseModel):
    """Where the accumulated record set lives."""

    backend: Literal["sqlite", "json"] = "sqlite"
    path: Path = Field(default=Path("data/history/accumulated.db"))

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_path(self, base_dir: Path) -> Path:
        """Return the storage path relative to the project root."""

        if not self.path.is_absolute():
            return (base_dir / self.path).resolve()
        return self.path


class GlobalConfig(BaseModel):
    """Global controls shared across sources."""

    fetch: FetchConfig = Field(default_factory=FetchConfig)
    cache_ttl_seconds: float = 24 * 60 * 60
    error_history_limit: int = 50
    progress_queue_size: int = 256
    user_agent_list: list[str] | Path | None = None
    enable_progress_bar: bool = True
    storage: StorageConfig = Field(default_factory=StorageConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    exports_dir: Path = Field(default=Path("data/exports"))

    @field_validator("exports_dir", mode="before")
    @classmethod
    def _coerce_dirs(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _validate_limits(self) -> "GlobalConfig":
        if self.cache_ttl_seconds < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")
        if self.error_history_limit < 1:
            raise ValueError("error_history_limit must be >= 1")
        if self.progress_queue_size < 1:
            raise ValueError("progress_queue_size must be >= 1")
        return self

    @model_validator(mode="after")
    def _apply_user_agents(self) -> "GlobalConfig":
        if isinstance(self.user_agent_list, Path):
            if not self.user_agent_list.exists():
                raise ValueError(f"UA file not found: {self.user_agent_list}")
            content = self.user_agent_list.read_text(encoding="utf-8").splitlines()
            self.user_agent_list = [line.strip() for line in content if line.strip()]
        return self


__all__ = [
    "DEFAULT_USER_AGENT",
    "ExtractorConfig",
    "FetchConfig",
    "GlobalConfig",
    "PatternStrategy",
    "RECORD_FIELDS",
    "ScheduleConfig",
    "ScheduleType",
    "SourceDescriptor",
    "SourceKind",
    "StorageConfig",
]
