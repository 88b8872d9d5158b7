"""Engine components: fetch → extract → reconcile."""

from .extractors import ExtractionContext, SourceExtractor, build_extractor
from .fetcher import RateLimitedFetcher
from .identity import identity_key, richness_score
from .page_cache import CachedPage, PageCache
from .reconcile import ReconciliationStore, StoreStats
from .records import (
    AccumulatedRecord,
    BackgroundFetchStatus,
    CandidateRecord,
    ProgressEvent,
    RunState,
)

__all__ = [
    "AccumulatedRecord",
    "BackgroundFetchStatus",
    "CachedPage",
    "CandidateRecord",
    "ExtractionContext",
    "PageCache",
    "ProgressEvent",
    "RateLimitedFetcher",
    "ReconciliationStore",
    "RunState",
    "SourceExtractor",
    "StoreStats",
    "build_extractor",
    "identity_key",
    "richness_score",
]
