"""Infrastructure helpers: durable storage and request identity."""

from .storage import (
    JsonFileRecordStorage,
    RecordStorage,
    SQLiteManager,
    SQLiteRecordStorage,
    open_storage,
)
from .ua_pool import UserAgentPool

__all__ = [
    "JsonFileRecordStorage",
    "RecordStorage",
    "SQLiteManager",
    "SQLiteRecordStorage",
    "UserAgentPool",
    "open_storage",
]
