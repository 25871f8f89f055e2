"""Pydantic models used across Catalog-Crawler configuration flow."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_BASE_URL = "https://www.xivmodarchive.com"
DEFAULT_USER_AGENT = "CatalogCrawler/1.0"


class ItemType(IntEnum):
    """Listing type identifiers understood by the search endpoint."""

    GEAR = 1
    BODY = 2
    FACE = 3
    HAIR = 4
    RESHADE_PRESET = 5
    OTHER = 6
    MINION = 7
    MOUNT = 8
    FURNITURE = 9
    SKIN = 10
    RACIAL_SCALING = 12
    POSE = 13
    VFX = 14
    ANIMATION = 15
    SOUND = 16


class SortField(str, Enum):
    """Sort keys accepted by the listing endpoint."""

    RANK = "rank"
    TIME_EDITED = "time_edited"
    TIME_PUBLISHED = "time_published"
    NAME_SLUG = "name_slug"
    VIEWS = "views"
    VIEWS_TODAY = "views_today"
    DOWNLOADS = "downloads"
    FOLLOWERS = "followers"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SearchFilters(BaseModel):
    """Sort/filter tuple sent with every listing request.

    Any difference between two tuples invalidates the cache, so the model is
    frozen and compared by value.
    """

    model_config = ConfigDict(frozen=True)

    type_filters: tuple[int, ...] = ()
    sort_by: SortField = SortField.TIME_PUBLISHED
    sort_order: SortOrder = SortOrder.DESC
    compatibility: int = Field(default=1, ge=0, le=3)

    @field_validator("type_filters", mode="before")
    @classmethod
    def _coerce_types(cls, value: Any) -> tuple[int, ...]:
        if value in (None, ""):
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(int(item) for item in value)
        raise ValueError("type_filters expects a list of integers")

    def query_params(self, page: int) -> dict[str, str | int]:
        params: dict[str, str | int] = {
            "sortby": self.sort_by.value,
            "sortorder": self.sort_order.value,
            "dt_compat": self.compatibility,
            "page": page,
        }
        if self.type_filters:
            params["types"] = ",".join(str(item) for item in self.type_filters)
        return params


class CatalogSettings(BaseModel):
    """Immutable settings snapshot consumed by the ingestion pipeline."""

    model_config = ConfigDict(frozen=True)

    base_url: str = DEFAULT_BASE_URL
    session_token: str | None = None
    cookie_name: str = "connect.sid"
    request_delay_ms: int = Field(default=1000, ge=0)
    max_retries: int = Field(default=3, ge=0)
    max_pages: int = Field(default=2, ge=1)
    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: float = Field(default=30.0, gt=0)
    cache_ttl_minutes: int = Field(default=10, ge=0)
    enrichment_concurrency: int = Field(default=8, ge=1)
    parallel_page_fetching: bool = True
    reduced_delay_for_parallel: bool = True
    filters: SearchFilters = Field(default_factory=SearchFilters)

    @field_validator("base_url", mode="before")
    @classmethod
    def _strip_base_url(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text.startswith(("http://", "https://")):
            raise ValueError("base_url must be an absolute http(s) URL")
        return text.rstrip("/")

    @field_validator("session_token", mode="before")
    @classmethod
    def _blank_token(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @model_validator(mode="after")
    def _validate_user_agent(self) -> "CatalogSettings":
        if not self.user_agent.strip():
            raise ValueError("user_agent cannot be empty")
        return self

    @property
    def request_delay(self) -> float:
        """Configured per-request delay in seconds."""

        return self.request_delay_ms / 1000.0

    @property
    def parallel_pages(self) -> bool:
        return self.parallel_page_fetching and self.max_pages > 1


__all__ = [
    "CatalogSettings",
    "DEFAULT_BASE_URL",
    "DEFAULT_USER_AGENT",
    "ItemType",
    "SearchFilters",
    "SortField",
    "SortOrder",
]
