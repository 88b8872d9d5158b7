"""Rate-limited, retrying, cache-aware HTTP fetching."""

from __future__ import annotations

import time
from email.utils import formatdate
from threading import Lock
from typing import Any, Callable, Mapping

import httpx
import structlog

from ..config import FetchConfig
from ..errors import FetchError
from ..infra.ua_pool import UserAgentPool
from .page_cache import PageCache

BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.9,*/*;q=0.8",
    "Accept-Language": "ja,en-US;q=0.7,en;q=0.3",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}


class RateLimitedFetcher:
    """Fetch remote resources politely.

    Every call that reaches the network first waits until
    ``min_request_interval`` has elapsed since the previous outbound call made
    by this instance, whatever the URL. Fresh cache entries short-circuit the
    network entirely; stale ones are revalidated with conditional headers.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        *,
        cache: PageCache | None = None,
        ua_pool: UserAgentPool | None = None,
        logger: structlog.BoundLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        client: httpx.Client | None = None,
    ) -> None:
        self.config = config or FetchConfig()
        self.cache = cache if cache is not None else PageCache()
        self.ua_pool = ua_pool
        self.logger = logger or structlog.get_logger("listing_harvester.fetcher")
        self._clock = clock
        self._sleep = sleep
        self._client = client or httpx.Client(follow_redirects=True)
        self._rate_lock = Lock()
        self._last_request_at: float | None = None

    def __enter__(self) -> "RateLimitedFetcher":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def fetch(
        self,
        url: str,
        config: FetchConfig | None = None,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> str:
        cfg = config or self.config
        target = str(httpx.URL(url).copy_merge_params(dict(params))) if params else url

        cached = self.cache.get(target)
        if cached is not None and self.cache.is_fresh(cached):
            self.logger.debug("cache_hit", url=target)
            return cached.content

        request_headers = dict(BASE_HEADERS)
        request_headers["User-Agent"] = (
            self.ua_pool.pick(cfg.user_agent) if self.ua_pool else cfg.user_agent
        )
        if cached is not None:
            if cached.last_modified:
                request_headers["If-Modified-Since"] = cached.last_modified
            if cached.etag:
                request_headers["If-None-Match"] = cached.etag
        if headers:
            request_headers.update(headers)

        self._enforce_rate_limit(cfg.min_request_interval)

        last_error: Exception | None = None
        for attempt in range(1, cfg.max_retries + 1):
            try:
                response = self._client.request(
                    method="GET",
                    url=target,
                    headers=request_headers,
                    timeout=cfg.timeout,
                )
            except httpx.HTTPError as exc:
                last_error = exc
                self.logger.warning(
                    "fetch_error",
                    url=target,
                    attempt=attempt,
                    max_attempts=cfg.max_retries,
                    error=str(exc),
                )
            else:
                if response.status_code == 304 and cached is not None:
                    self.cache.touch(target)
                    self.logger.info("not_modified", url=target)
                    return cached.content
                if response.is_success:
                    content = response.text
                    self.cache.store(
                        target,
                        content,
                        last_modified=response.headers.get("Last-Modified")
                        or formatdate(usegmt=True),
                        etag=response.headers.get("ETag"),
                    )
                    self.logger.info("fetch_ok", url=target, attempt=attempt, size=len(content))
                    return content
                last_error = RuntimeError(f"Unexpected status {response.status_code}")
                self.logger.warning(
                    "fetch_bad_status",
                    url=target,
                    attempt=attempt,
                    max_attempts=cfg.max_retries,
                    status=response.status_code,
                )

            if attempt < cfg.max_retries and cfg.retry_delay > 0:
                self._sleep(cfg.retry_delay)

        self.logger.error("fetch_failed", url=target, attempts=cfg.max_retries, error=str(last_error))
        raise FetchError(target, cfg.max_retries, last_error) from last_error

    def clear_cache(self) -> None:
        self.cache.clear()
        self.logger.info("page_cache_cleared")

    def cache_stats(self) -> dict[str, object]:
        return self.cache.stats()

    # ------------------------------------------------------------------
    def _enforce_rate_limit(self, interval: float) -> None:
        with self._rate_lock:
            if self._last_request_at is not None:
                wait = interval - (self._clock() - self._last_request_at)
                if wait > 0:
                    self.logger.debug("rate_limit_wait", seconds=round(wait, 3))
                    self._sleep(wait)
            self._last_request_at = self._clock()


__all__ = ["BASE_HEADERS", "RateLimitedFetcher"]
