"""Engine components orchestrating fetch → parse → dedup → enrich."""

from .cancel import CancellationToken, OperationCancelled
from .dedup import dedupe_by_image
from .enrichment import Enricher
from .fetcher import FetchResponse, Fetcher
from .invalidation import (
    InvalidationDecision,
    InvalidationState,
    InvalidationTracker,
    evaluate_invalidation,
)
from .pages import PageFetchError, PageFetcher
from .parser import DetailRecord, parse_detail, parse_listing_card
from .records import CacheRecord, CatalogItem, Gender

__all__ = [
    "CacheRecord",
    "CancellationToken",
    "CatalogItem",
    "DetailRecord",
    "Enricher",
    "FetchResponse",
    "Fetcher",
    "Gender",
    "InvalidationDecision",
    "InvalidationState",
    "InvalidationTracker",
    "OperationCancelled",
    "PageFetchError",
    "PageFetcher",
    "dedupe_by_image",
    "evaluate_invalidation",
    "parse_detail",
    "parse_listing_card",
]
