"""Catalog item and cache record types shared by the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    UNISEX = "Unisex"

    @classmethod
    def from_label(cls, label: str | None) -> "Gender":
        text = (label or "").strip().lower()
        if text == "male":
            return cls.MALE
        if text == "female":
            return cls.FEMALE
        return cls.UNISEX


def to_utc(value: datetime) -> datetime:
    """Normalise a datetime to an aware UTC value; naive input is taken as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True)
class CatalogItem:
    """One catalog entry, from listing extraction through enrichment."""

    name: str
    image_url: str
    publisher: str = ""
    category: str = ""
    detail_url: str = ""
    download_url: str = ""
    gender: Gender = Gender.UNISEX
    tags: list[str] = field(default_factory=list)
    last_updated: datetime | None = None
    version: str = ""

    def __post_init__(self) -> None:
        if self.last_updated is not None:
            self.last_updated = to_utc(self.last_updated)

    def without_enrichment(self) -> "CatalogItem":
        """Return a copy with every detail-page field cleared."""

        return replace(self, download_url="", tags=[], last_updated=None, version="")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "publisher": self.publisher,
            "category": self.category,
            "image_url": self.image_url,
            "detail_url": self.detail_url,
            "download_url": self.download_url,
            "gender": self.gender.value,
            "tags": list(self.tags),
            "last_updated": self.last_updated,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CatalogItem":
        return cls(
            name=payload["name"],
            image_url=payload["image_url"],
            publisher=payload.get("publisher", ""),
            category=payload.get("category", ""),
            detail_url=payload.get("detail_url", ""),
            download_url=payload.get("download_url", ""),
            gender=Gender(payload.get("gender", Gender.UNISEX.value)),
            tags=list(payload.get("tags") or []),
            last_updated=payload.get("last_updated"),
            version=payload.get("version", ""),
        )


@dataclass(slots=True)
class CacheRecord:
    """Persisted result of one successful fetch and enrich cycle."""

    items: list[CatalogItem]
    expires_at: datetime

    def __post_init__(self) -> None:
        self.expires_at = to_utc(self.expires_at)

    def is_expired(self, now: datetime | None = None) -> bool:
        reference = to_utc(now) if now is not None else datetime.now(timezone.utc)
        return self.expires_at <= reference


__all__ = ["CacheRecord", "CatalogItem", "Gender", "to_utc"]
