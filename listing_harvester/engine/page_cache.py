"""In-memory page cache with freshness metadata for conditional requests."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from threading import Lock
from typing import Dict

from .records import utcnow


@dataclass(slots=True)
class CachedPage:
    """Last known good body of a URL plus the validators the server gave us."""

    url: str
    content: str
    last_modified: str | None
    etag: str | None
    last_checked_at: datetime

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or utcnow()) - self.last_checked_at


class PageCache:
    """URL-keyed cache owned by a single fetcher."""

    def __init__(self, ttl_seconds: float = 24 * 60 * 60) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self._pages: Dict[str, CachedPage] = {}
        self._lock = Lock()

    def get(self, url: str) -> CachedPage | None:
        with self._lock:
            page = self._pages.get(url)
            return replace(page) if page is not None else None

    def is_fresh(self, page: CachedPage, now: datetime | None = None) -> bool:
        return page.age(now) < self.ttl

    def store(
        self,
        url: str,
        content: str,
        *,
        last_modified: str | None,
        etag: str | None,
        checked_at: datetime | None = None,
    ) -> CachedPage:
        page = CachedPage(
            url=url,
            content=content,
            last_modified=last_modified,
            etag=etag,
            last_checked_at=checked_at or utcnow(),
        )
        with self._lock:
            self._pages[url] = page
        return replace(page)

    def touch(self, url: str, checked_at: datetime | None = None) -> None:
        with self._lock:
            page = self._pages.get(url)
            if page is not None:
                page.last_checked_at = checked_at or utcnow()

    def clear(self) -> None:
        with self._lock:
            self._pages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pages)

    def stats(self) -> dict[str, object]:
        with self._lock:
            return {"size": len(self._pages), "urls": list(self._pages)}


__all__ = ["CachedPage", "PageCache"]
