"""Pytest configuration providing a fake catalog site and shared fixtures."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import pytest

from catalog_crawler.config import CatalogSettings, ConfigLocator, ConfigRepository, SearchFilters

BASE_URL = "https://mods.example"


def listing_card(
    name: str,
    image: str | None = None,
    href: str | None = None,
    publisher: str = "Author",
    category: str = "Gear",
    genders: str = "Unisex",
) -> str:
    slug = name.lower().replace(" ", "-")
    image_src = image if image is not None else f"{BASE_URL}/img/{slug}.jpg"
    image_html = f'<img class="card-img-top" src="{image_src}">' if image_src else ""
    detail_href = href or f"/modid/{slug}"
    return f"""
    <div class="mod-card">
      <a href="{detail_href}">{image_html}</a>
      <div class="card-body">
        <h5 class="card-title">{name}</h5>
        <p class="card-text">By: <a href="/user/{publisher.lower()}">{publisher}</a></p>
        <code class="text-light">Type: {category}</code>
        <code class="text-light">Genders: {genders}</code>
      </div>
    </div>
    """


def listing_page(*cards: str) -> str:
    return "<html><body><div class='row'>" + "".join(cards) + "</div></body></html>"


def detail_page(
    download: str | None = "/private/download/1/file.ttmp2",
    tags: Iterable[str] = ("Outfit",),
    version: str = "1.0",
    updated: str = "2024-03-01T10:00:00Z",
) -> str:
    anchor = f'<a id="mod-download-link" href="{download}">Download</a>' if download is not None else ""
    tag_html = "".join(f'<a href="/search?tags={tag}">{tag}</a>' for tag in tags)
    return f"""
    <html><body>
      <div class="mod-tags">{tag_html}</div>
      <code class="text-light">Version: {version}</code>
      <code class="text-light">Last Version Update: {updated}</code>
      {anchor}
    </body></html>
    """


@dataclass
class FakeCatalogSite:
    """Serve listing and detail pages through an ``httpx.MockTransport``."""

    pages: dict[int, str] = field(default_factory=dict)
    details: dict[str, str] = field(default_factory=dict)
    listing_failures: int = 0
    failing_details: set[str] = field(default_factory=set)
    detail_latency: float = 0.0
    requests: list[httpx.Request] = field(default_factory=list)
    in_flight: int = 0
    max_in_flight: int = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @property
    def listing_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == "/search"]

    @property
    def detail_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path != "/search"]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/search":
            if self.listing_failures > 0:
                self.listing_failures -= 1
                return httpx.Response(503, text="unavailable")
            page = int(request.url.params.get("page", "1"))
            return httpx.Response(200, text=self.pages.get(page, listing_page()))

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.detail_latency:
                await asyncio.sleep(self.detail_latency)
            if request.url.path in self.failing_details:
                return httpx.Response(500, text="boom")
            html = self.details.get(request.url.path)
            if html is None:
                return httpx.Response(404, text="missing")
            return httpx.Response(200, text=html)
        finally:
            self.in_flight -= 1


@pytest.fixture
def make_settings() -> Callable[..., CatalogSettings]:
    def _builder(**overrides: Any) -> CatalogSettings:
        base: dict[str, Any] = {
            "base_url": BASE_URL,
            "request_delay_ms": 0,
            "max_retries": 3,
            "max_pages": 2,
            "enrichment_concurrency": 4,
            "filters": SearchFilters(),
        }
        base.update(overrides)
        return CatalogSettings(**base)

    return _builder


@pytest.fixture
def catalog_site() -> FakeCatalogSite:
    return FakeCatalogSite()


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("CATALOG_CRAWLER_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository
