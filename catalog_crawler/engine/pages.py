"""Listing page retrieval with whole page-set retry."""

from __future__ import annotations

import structlog

from ..config import CatalogSettings
from .cancel import CancellationToken, OperationCancelled, gather_all
from .dedup import dedupe_by_image
from .fetcher import Fetcher, effective_delay
from .parser import parse_listing_card, split_listing
from .records import CatalogItem


class PageFetchError(RuntimeError):
    """Raised when the listing page set kept failing after all retries."""


class PageFetcher:
    """Fetch pages ``1..max_pages`` sequentially or concurrently and deduplicate."""

    def __init__(
        self,
        fetcher: Fetcher,
        settings: CatalogSettings,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.settings = settings
        self.logger = logger or structlog.get_logger("catalog_crawler.pages")

    @property
    def search_url(self) -> str:
        return f"{self.settings.base_url}/search"

    @property
    def page_delay(self) -> float:
        return effective_delay(
            self.settings.request_delay,
            self.settings.reduced_delay_for_parallel,
            self.settings.parallel_pages,
        )

    async def fetch_all(self, token: CancellationToken) -> list[CatalogItem]:
        """Fetch the configured page range, retrying the whole set on failure.

        The wait before retry ``n`` is ``request_delay * n``. Once failures
        exceed ``max_retries`` the last error is raised as
        :class:`PageFetchError`. Cancellation never counts as a failure.
        """

        failures = 0
        while True:
            token.raise_if_cancelled()
            if failures:
                await token.sleep(self.settings.request_delay * failures)
            try:
                if self.settings.parallel_pages:
                    self.logger.info("fetching_pages_parallel", pages=self.settings.max_pages)
                    results = await gather_all(
                        self._fetch_page(page, token)
                        for page in range(1, self.settings.max_pages + 1)
                    )
                else:
                    self.logger.info("fetching_pages_sequential", pages=self.settings.max_pages)
                    results = []
                    for page in range(1, self.settings.max_pages + 1):
                        token.raise_if_cancelled()
                        results.append(await self._fetch_page(page, token))
            except OperationCancelled:
                self.logger.info("page_fetch_cancelled", attempt=failures + 1)
                raise
            except Exception as exc:  # noqa: BLE001
                failures += 1
                self.logger.warning(
                    "page_fetch_failed",
                    attempt=failures,
                    max_retries=self.settings.max_retries,
                    error=str(exc),
                )
                if failures > self.settings.max_retries:
                    self.logger.error(
                        "page_fetch_exhausted", max_retries=self.settings.max_retries
                    )
                    raise PageFetchError(
                        f"Listing fetch failed after {self.settings.max_retries} retries"
                    ) from exc
                continue

            candidates = [item for page_items in results for item in page_items]
            self.logger.info("pages_fetched", candidates=len(candidates))
            return dedupe_by_image(candidates)

    async def _fetch_page(self, page: int, token: CancellationToken) -> list[CatalogItem]:
        token.raise_if_cancelled()
        await token.sleep(self.page_delay)
        self.logger.debug("fetching_page", page=page, pages=self.settings.max_pages)
        html = await self.fetcher.get_text(
            self.search_url, params=self.settings.filters.query_params(page), token=token
        )
        cards = split_listing(html)
        if not cards:
            self.logger.debug("page_without_cards", page=page)
            return []
        items: list[CatalogItem] = []
        for card in cards:
            token.raise_if_cancelled()
            try:
                item = parse_listing_card(card, self.settings.base_url)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("listing_card_failed", page=page, error=str(exc))
                continue
            if item is not None:
                items.append(item)
        self.logger.debug("page_parsed", page=page, items=len(items))
        return items


__all__ = ["PageFetchError", "PageFetcher"]
