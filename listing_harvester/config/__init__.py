"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository, default_catalog_path
from .models import (
    DEFAULT_USER_AGENT,
    RECORD_FIELDS,
    ExtractorConfig,
    FetchConfig,
    GlobalConfig,
    PatternStrategy,
    ScheduleConfig,
    ScheduleType,
    SourceDescriptor,
    SourceKind,
    StorageConfig,
)

__all__ = [
    "DEFAULT_USER_AGENT",
    "RECORD_FIELDS",
    "ConfigLocator",
    "ConfigRepository",
    "ExtractorConfig",
    "FetchConfig",
    "GlobalConfig",
    "PatternStrategy",
    "ScheduleConfig",
    "ScheduleType",
    "SourceDescriptor",
    "SourceKind",
    "StorageConfig",
    "default_catalog_path",
]
