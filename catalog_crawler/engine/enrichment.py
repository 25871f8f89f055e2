"""Detail page enrichment under a bounded number of concurrent requests."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from urllib.parse import urljoin

import structlog

from ..config import CatalogSettings
from .cancel import CancellationToken, OperationCancelled, gather_all
from .fetcher import Fetcher, effective_delay
from .parser import parse_detail
from .records import CatalogItem


class Enricher:
    """Visit every item's detail page and merge the detail-only fields back in."""

    def __init__(
        self,
        fetcher: Fetcher,
        settings: CatalogSettings,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.settings = settings
        self.logger = logger or structlog.get_logger("catalog_crawler.enrichment")

    @property
    def concurrency(self) -> int:
        return max(1, self.settings.enrichment_concurrency)

    @property
    def request_delay(self) -> float:
        return effective_delay(
            self.settings.request_delay,
            self.settings.reduced_delay_for_parallel,
            self.concurrency > 1,
        )

    async def enrich(
        self, items: list[CatalogItem], token: CancellationToken
    ) -> list[CatalogItem]:
        """Return one enriched item per input item, in input order.

        A failed detail fetch degrades only that item; cancellation aborts all.
        """

        self.logger.debug("enrichment_started", items=len(items), concurrency=self.concurrency)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def visit(item: CatalogItem) -> CatalogItem:
            async with semaphore:
                token.raise_if_cancelled()
                return await self._enrich_one(item, token)

        enriched = await gather_all(visit(item) for item in items)
        with_links = sum(1 for item in enriched if item.download_url)
        self.logger.info("enrichment_finished", items=len(enriched), with_download=with_links)
        return enriched

    def resolve_detail_url(self, detail_url: str) -> str:
        if detail_url.lower().startswith("http"):
            return detail_url
        return urljoin(self.settings.base_url + "/", detail_url)

    async def _enrich_one(self, item: CatalogItem, token: CancellationToken) -> CatalogItem:
        if not item.detail_url:
            self.logger.warning("detail_url_missing", name=item.name)
            return item.without_enrichment()
        url = self.resolve_detail_url(item.detail_url)
        await token.sleep(self.request_delay)
        try:
            html = await self.fetcher.get_text(url, token=token)
            details = parse_detail(html, self.settings.base_url)
        except OperationCancelled:
            self.logger.debug("detail_fetch_cancelled", url=url)
            raise
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("detail_fetch_failed", url=url, error=str(exc))
            return item.without_enrichment()

        if not details.download_url:
            self.logger.warning("download_link_missing", url=url)
        return replace(
            item,
            download_url=details.download_url or "",
            tags=list(details.tags),
            last_updated=details.last_updated,
            version=details.version,
        )


__all__ = ["Enricher"]
