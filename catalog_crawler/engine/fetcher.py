"""HTTP fetching shared by listing and detail requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

import httpx
import structlog

from ..config import CatalogSettings
from .cancel import CancellationToken


@dataclass(slots=True)
class FetchResponse:
    """Standardised response wrapper."""

    url: str
    status_code: int
    text: str
    headers: Dict[str, str]
    raw: httpx.Response | None = field(repr=False, default=None)


def build_headers(settings: CatalogSettings) -> dict[str, str]:
    headers = {"User-Agent": settings.user_agent}
    if settings.session_token:
        headers["Cookie"] = f"{settings.cookie_name}={settings.session_token}"
    return headers


def effective_delay(base_delay: float, reduced: bool, concurrent: bool) -> float:
    """Per-request delay; halved when requests run concurrently and reduction is enabled."""

    if reduced and concurrent:
        return base_delay / 2
    return base_delay


class Fetcher:
    """Own the shared async HTTP client used by every pipeline request."""

    def __init__(
        self,
        settings: CatalogSettings,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self.logger = logger or structlog.get_logger("catalog_crawler.fetcher")
        self._client = self._create_client(settings)

    def _create_client(self, settings: CatalogSettings) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {
            "follow_redirects": True,
            "timeout": settings.timeout_seconds,
            "headers": build_headers(settings),
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def rebuild(self, settings: CatalogSettings) -> None:
        """Replace the client, e.g. after the session cookie changed."""

        old = self._client
        self.settings = settings
        self._client = self._create_client(settings)
        await old.aclose()
        self.logger.debug("http_client_rebuilt", has_cookie=bool(settings.session_token))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> FetchResponse:
        """GET ``url``; non-2xx responses raise :class:`httpx.HTTPStatusError`.

        With a ``token`` the request is aborted as soon as cancellation is
        requested, without waiting for the response or the timeout.
        """

        if token is None:
            response = await self._client.get(url, params=params)
        else:
            token.raise_if_cancelled()
            response = await token.run(self._client.get(url, params=params))
        response.raise_for_status()
        if token is not None:
            token.raise_if_cancelled()
        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            raw=response,
        )

    async def get_text(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> str:
        return (await self.fetch(url, params=params, token=token)).text


__all__ = ["FetchResponse", "Fetcher", "build_headers", "effective_delay"]
