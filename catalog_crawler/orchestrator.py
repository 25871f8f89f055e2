"""Pipeline wiring together invalidation, cache, page fetching and enrichment."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import httpx
import structlog

from .config import CatalogSettings, ConfigRepository
from .engine import (
    CancellationToken,
    CatalogItem,
    Enricher,
    Fetcher,
    InvalidationDecision,
    InvalidationState,
    InvalidationTracker,
    OperationCancelled,
    PageFetcher,
)
from .engine.fetcher import build_headers
from .infra import CacheStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogPipeline:
    """Central coordinator: cache check, then fetch → enrich → persist → return.

    ``get_items`` is not reentrant; callers run one call at a time per
    pipeline, which keeps the cache file and invalidation state single-writer.
    """

    def __init__(
        self,
        settings: CatalogSettings,
        settings_hash: str,
        cache_path: Path,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.settings = settings
        self.settings_hash = settings_hash
        self.logger = logger or structlog.get_logger("catalog_crawler.pipeline")
        self.store = CacheStore(
            cache_path, timedelta(minutes=settings.cache_ttl_minutes), clock=clock
        )
        self.fetcher = Fetcher(settings, transport=transport)
        self.pages = PageFetcher(self.fetcher, settings)
        self.enricher = Enricher(self.fetcher, settings)
        self.tracker = InvalidationTracker(
            self.store, InvalidationState(cookie=settings.session_token)
        )
        self._active_token: CancellationToken | None = None
        self._check_invalidation()

    @classmethod
    def from_repository(
        cls,
        repository: ConfigRepository,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "CatalogPipeline":
        snapshot = repository.load_settings()
        return cls(
            snapshot.settings,
            snapshot.hash,
            repository.locator.cache_path(),
            transport=transport,
        )

    # ------------------------------------------------------------------
    async def __aenter__(self) -> "CatalogPipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.fetcher.aclose()

    def cancel(self) -> None:
        """Request cancellation of the running ``get_items`` call, if any."""

        if self._active_token is not None:
            self._active_token.cancel()

    # ------------------------------------------------------------------
    async def configure(self, settings: CatalogSettings, settings_hash: str) -> InvalidationDecision:
        """Apply new settings; the HTTP client is rebuilt before any later fetch."""

        previous = self.settings
        self.settings = settings
        self.settings_hash = settings_hash
        decision = self._check_invalidation()

        client_changed = (
            build_headers(previous) != build_headers(settings)
            or previous.timeout_seconds != settings.timeout_seconds
        )
        if "cookie" in decision.reasons or client_changed:
            await self.fetcher.rebuild(settings)
        else:
            self.fetcher.settings = settings
        self.pages.settings = settings
        self.enricher.settings = settings
        self.store.ttl = timedelta(minutes=settings.cache_ttl_minutes)
        self.logger.info(
            "pipeline_configured",
            reasons=list(decision.reasons),
            client_rebuilt="cookie" in decision.reasons or client_changed,
        )
        return decision

    async def get_items(self, token: CancellationToken | None = None) -> list[CatalogItem]:
        """Return the enriched catalog, from cache when still valid.

        Returns ``[]`` when ``token`` was cancelled. Exhausted listing retries
        raise :class:`~catalog_crawler.engine.PageFetchError` and leave any
        previous cache untouched.
        """

        token = token or CancellationToken()
        self._active_token = token
        try:
            return await self._run(token)
        except OperationCancelled:
            if token.cancelled:
                self.logger.info("get_items_cancelled")
                return []
            raise
        finally:
            if self._active_token is token:
                self._active_token = None

    async def _run(self, token: CancellationToken) -> list[CatalogItem]:
        self._check_invalidation()
        record = self.store.load()
        if record is not None:
            self.logger.info(
                "cache_hit", items=len(record.items), expires_at=record.expires_at.isoformat()
            )
            return list(record.items)

        self.logger.info("cache_miss", path=str(self.store.path))
        candidates = await self.pages.fetch_all(token)
        items = await self.enricher.enrich(candidates, token)
        token.raise_if_cancelled()
        record = self.store.build_record(items)
        self.store.save(record)
        self.logger.info("catalog_refreshed", items=len(items))
        return list(record.items)

    def _check_invalidation(self) -> InvalidationDecision:
        return self.tracker.check(
            self.settings.session_token, self.settings.filters, self.settings_hash
        )


__all__ = ["CatalogPipeline"]
