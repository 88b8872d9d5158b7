"""Source orchestrator wiring together fetching, extraction, reconciliation and progress."""

from __future__ import annotations

import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from threading import Event, Lock
from typing import Callable, Deque, Dict, Iterable, List, Mapping, Sequence

import structlog

from .config import SourceDescriptor
from .engine import (
    BackgroundFetchStatus,
    CandidateRecord,
    ExtractionContext,
    ProgressEvent,
    RateLimitedFetcher,
    ReconciliationStore,
    RunState,
    SourceExtractor,
    build_extractor,
)
from .engine.records import utcnow
from .errors import PersistenceError, RunInProgressError

ProgressCallback = Callable[[str, int, int], None]


@dataclass(slots=True)
class RunOutcome:
    """What a single pass over the selected sources produced."""

    state: RunState
    candidates: List[CandidateRecord] = field(default_factory=list)


class SourceOrchestrator:
    """Drive every catalog source through fetch → extract, one source at a time.

    Only one run (synchronous or background) may be active; the run token is a
    lock taken without waiting. Background runs execute on a dedicated
    single-thread executor and merge each source's candidates into the
    reconciliation store as soon as that source finishes.
    """

    def __init__(
        self,
        catalog: Sequence[SourceDescriptor],
        fetcher: RateLimitedFetcher,
        store: ReconciliationStore,
        *,
        extractors: Mapping[str, SourceExtractor] | None = None,
        error_history_limit: int = 50,
        progress_queue_size: int = 256,
        logger: structlog.BoundLogger | None = None,
        log_factory: Callable[[str], structlog.BoundLogger] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        names = [source.name for source in catalog]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate source names in catalog: {duplicates}")
        self.fetcher = fetcher
        self.store = store
        self.error_history_limit = error_history_limit
        self.logger = logger or structlog.get_logger("listing_harvester").bind(component="orchestrator")
        self._log_factory = log_factory or (lambda name: self.logger.bind(source=name))
        self._clock = clock

        self._catalog: Dict[str, SourceDescriptor] = {source.name: source for source in catalog}
        self._order: List[str] = names
        self._enabled: Dict[str, bool] = {source.name: source.enabled for source in catalog}
        self._extractors: Dict[str, SourceExtractor] = dict(extractors or {})
        self._catalog_lock = Lock()

        self._run_token = Lock()
        self._cancel = Event()
        self._status = BackgroundFetchStatus()
        self._status_lock = Lock()
        self._events: Deque[ProgressEvent] = deque(maxlen=progress_queue_size)
        self._events_lock = Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="harvester-worker")
        self._future: Future[None] | None = None

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    def list_sources(self) -> List[SourceDescriptor]:
        """Sources by ascending priority; ties keep catalog order."""

        with self._catalog_lock:
            sources = [
                self._catalog[name].model_copy(update={"enabled": self._enabled[name]})
                for name in self._order
            ]
        return sorted(sources, key=lambda source: source.priority)

    def set_enabled(self, name: str, enabled: bool) -> None:
        with self._catalog_lock:
            if name not in self._catalog:
                raise KeyError(name)
            self._enabled[name] = enabled
        self.logger.info("source_toggled", source=name, enabled=enabled)

    def select_sources(self, selection: Iterable[str] | None) -> List[SourceDescriptor]:
        sources = self.list_sources()
        if selection is None:
            return sources
        wanted = set(selection)
        unknown = sorted(wanted - {source.name for source in sources})
        if unknown:
            raise KeyError(f"Unknown source(s): {', '.join(unknown)}")
        return [source for source in sources if source.name in wanted]

    def _extractor_for(self, source: SourceDescriptor) -> SourceExtractor:
        with self._catalog_lock:
            extractor = self._extractors.get(source.name)
            if extractor is None:
                extractor = build_extractor(source)
                self._extractors[source.name] = extractor
            return extractor

    # ------------------------------------------------------------------
    # Synchronous runs
    # ------------------------------------------------------------------
    def run_once(
        self,
        selection: Iterable[str] | None = None,
        on_progress: ProgressCallback | None = None,
        *,
        timeout: float | None = None,
    ) -> List[CandidateRecord]:
        """Harvest the selected sources on the calling thread and return every candidate.

        Candidates are not merged into the store; the caller decides.
        """

        sources = self.select_sources(selection)
        if not self._run_token.acquire(blocking=False):
            raise RunInProgressError("Another harvesting run is already active")
        outcome = RunOutcome(state=RunState.FAILED)
        try:
            self._begin(len(sources))
            deadline = self._clock() + timeout if timeout is not None else None
            outcome = self._process(sources, on_progress, merge=False, deadline=deadline)
            return outcome.candidates
        finally:
            self._finish(outcome.state)
            self._run_token.release()

    # ------------------------------------------------------------------
    # Background runs
    # ------------------------------------------------------------------
    def start_background(
        self,
        selection: Iterable[str] | None = None,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> bool:
        """Launch a run on the worker thread; False when one is already active."""

        sources = self.select_sources(selection)
        if not self._run_token.acquire(blocking=False):
            self.logger.info("background_already_running")
            return False
        try:
            self._begin(len(sources))
            deadline = self._clock() + timeout if timeout is not None else None
            self._future = self._executor.submit(self._background_worker, sources, on_progress, deadline)
        except BaseException:
            self._finish(RunState.FAILED)
            self._run_token.release()
            raise
        self.logger.info("background_started", sources=len(sources), timeout=timeout)
        return True

    def stop_background(self) -> None:
        """Request cancellation at the next source boundary."""

        with self._status_lock:
            if not self._status.is_running:
                return
            self._cancel.set()
            self._status.is_running = False
            self._status.state = RunState.STOPPED
            self._status.last_update = utcnow()
        self.logger.info("background_stop_requested")

    def get_background_status(self) -> BackgroundFetchStatus:
        with self._status_lock:
            return self._status.snapshot()

    def drain_progress(self) -> List[ProgressEvent]:
        with self._events_lock:
            events = list(self._events)
            self._events.clear()
        return events

    def wait_background(self, timeout: float | None = None) -> bool:
        """Block until the background worker finishes; False on timeout."""

        future = self._future
        if future is None:
            return True
        done, _ = wait([future], timeout=timeout)
        return bool(done)

    def shutdown(self, wait_for_worker: bool = True) -> None:
        self.stop_background()
        self._executor.shutdown(wait=wait_for_worker)

    def _background_worker(
        self,
        sources: List[SourceDescriptor],
        on_progress: ProgressCallback | None,
        deadline: float | None,
    ) -> None:
        state = RunState.FAILED
        try:
            outcome = self._process(sources, on_progress, merge=True, deadline=deadline)
            state = outcome.state
            self.logger.info(
                "background_finished",
                state=state.value,
                candidates=len(outcome.candidates),
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.error("background_crashed", error=str(exc))
            self._record_error("run", exc)
        finally:
            self._finish(state)
            self._run_token.release()

    # ------------------------------------------------------------------
    # Run body
    # ------------------------------------------------------------------
    def _process(
        self,
        sources: List[SourceDescriptor],
        on_progress: ProgressCallback | None,
        *,
        merge: bool,
        deadline: float | None,
    ) -> RunOutcome:
        outcome = RunOutcome(state=RunState.COMPLETED)
        total = len(sources)
        completed = 0
        for source in sources:
            if self._cancel.is_set():
                self.logger.info("run_cancelled", completed=completed, total=total)
                outcome.state = RunState.STOPPED
                return outcome
            if deadline is not None and self._clock() >= deadline:
                self.logger.warning("run_timed_out", completed=completed, total=total)
                outcome.state = RunState.TIMED_OUT
                return outcome

            if not source.enabled:
                completed += 1
                self._notify(f"{source.name}: skipped (disabled)", completed, total, on_progress)
                continue

            batch: List[CandidateRecord] = []
            try:
                self._harvest_source(source, batch, completed, total, on_progress)
            except Exception as exc:  # noqa: BLE001
                self._record_error(source.name, exc)
            outcome.candidates.extend(batch)

            if merge and batch:
                try:
                    self.store.merge(batch)
                except PersistenceError as exc:
                    self._record_error(source.name, exc)
                    outcome.state = RunState.FAILED
                    return outcome

            completed += 1
            self._notify(
                f"{source.name}: done ({len(batch)} records)", completed, total, on_progress
            )
        return outcome

    def _harvest_source(
        self,
        source: SourceDescriptor,
        sink: List[CandidateRecord],
        completed: int,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        log = self._log_factory(source.name)
        extractor = self._extractor_for(source)
        for page in range(1, source.max_pages + 1):
            params = dict(source.params)
            if source.page_param:
                params[source.page_param] = str(page)
            if source.per_page_param:
                params[source.per_page_param] = str(source.per_page)
            raw = self.fetcher.fetch(source.url, source.fetch, params=params or None)
            context = ExtractionContext(
                source_name=source.name, url=source.url, page=page, per_page=source.per_page
            )
            records = extractor.extract(raw, context)
            log.info("page_extracted", page=page, count=len(records))
            sink.extend(records)
            self._notify(
                f"{source.name}: page {page}/{source.max_pages} ({len(records)} records)",
                completed,
                total,
                on_progress,
            )
            if not records:
                break

    # ------------------------------------------------------------------
    # Status bookkeeping
    # ------------------------------------------------------------------
    def _begin(self, total: int) -> None:
        self._cancel.clear()
        with self._status_lock:
            self._status = BackgroundFetchStatus(
                is_running=True,
                total_sources=total,
                state=RunState.RUNNING,
                current_message="starting",
            )

    def _finish(self, state: RunState) -> None:
        if self._cancel.is_set():
            state = RunState.STOPPED
        with self._status_lock:
            self._status.is_running = False
            self._status.state = state
            self._status.last_update = utcnow()

    def _notify(
        self,
        message: str,
        completed: int,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        with self._status_lock:
            self._status.completed_sources = completed
            self._status.current_message = message
            self._status.last_update = utcnow()
        with self._events_lock:
            self._events.append(ProgressEvent(message=message, current=completed, total=total))
        if on_progress is None:
            return
        try:
            on_progress(message, completed, total)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("progress_callback_failed", error=str(exc))

    def _record_error(self, source_name: str, error: BaseException) -> None:
        entry = f"{source_name}: {error}"
        with self._status_lock:
            self._status.errors.append(entry)
            overflow = len(self._status.errors) - self.error_history_limit
            if overflow > 0:
                del self._status.errors[:overflow]
            self._status.last_update = utcnow()
        self.logger.error("source_failed", source=source_name, error=str(error))


__all__ = ["ProgressCallback", "RunOutcome", "SourceOrchestrator"]
