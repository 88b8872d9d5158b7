"""Shared fixtures for listing-harvester tests."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, List

import pytest

from listing_harvester.config import (
    ConfigLocator,
    ConfigRepository,
    FetchConfig,
    SourceDescriptor,
)
from listing_harvester.config.loader import HOME_ENV_VAR
from listing_harvester.engine.records import AccumulatedRecord, coerce_datetime
from listing_harvester.errors import PersistenceError
from listing_harvester.infra.storage import RecordStorage


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv(HOME_ENV_VAR, str(tmp_path))
    return tmp_path


class MemoryStorage(RecordStorage):
    """In-memory storage that records every save and can be told to fail."""

    def __init__(self, records: Iterable[AccumulatedRecord] = ()) -> None:
        self.saved: List[List[AccumulatedRecord]] = []
        self._records = list(records)
        self._updated: datetime | None = None
        self.fail = False

    def save(self, records):
        if self.fail:
            raise PersistenceError("disk full")
        self._records = list(records)
        self.saved.append(list(self._records))
        self._updated = coerce_datetime("2024-01-01T00:00:00Z")

    def load(self):
        return list(self._records)

    def clear(self):
        if self.fail:
            raise PersistenceError("disk full")
        self._records = []

    def last_updated(self):
        return self._updated


class FakeFetcher:
    """Stands in for RateLimitedFetcher; ``pages`` maps URL to content, an exception or a callable."""

    def __init__(self, pages: dict[str, Any]) -> None:
        self.pages = pages
        self.calls: list[tuple[str, dict[str, str]]] = []

    def fetch(self, url, config=None, *, params=None, headers=None):
        self.calls.append((url, dict(params or {})))
        payload = self.pages[url]
        if callable(payload):
            payload = payload(dict(params or {}))
        if isinstance(payload, BaseException):
            raise payload
        return payload

    def close(self) -> None:
        return


def json_companies(*names: str) -> str:
    return json.dumps({"companies": [{"name": name, "address": "東京都港区1-1"} for name in names]})


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def fake_fetcher() -> type[FakeFetcher]:
    return FakeFetcher


@pytest.fixture
def companies_payload() -> Callable[..., str]:
    return json_companies


@pytest.fixture
def fast_fetch_config() -> FetchConfig:
    return FetchConfig(max_retries=3, retry_delay=0.0, min_request_interval=0.0, timeout=5.0)


@pytest.fixture
def make_source() -> Callable[..., SourceDescriptor]:
    def _builder(name: str = "Example", **overrides: Any) -> SourceDescriptor:
        base: dict[str, Any] = {
            "name": name,
            "kind": "api",
            "url": f"https://example.test/{name}",
            "priority": 10,
            "max_pages": 1,
            "per_page": 20,
            "per_page_param": None,
        }
        base.update(overrides)
        return SourceDescriptor.model_validate(base)

    return _builder


@pytest.fixture
def make_accumulated() -> Callable[..., AccumulatedRecord]:
    def _builder(name: str = "Example", **overrides: Any) -> AccumulatedRecord:
        return AccumulatedRecord(name=name, **overrides)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> ConfigRepository:
    return ConfigRepository(ConfigLocator(project_root=tmp_path))
