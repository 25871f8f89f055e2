"""Deduplication of listing candidates."""

from __future__ import annotations

from typing import Iterable

from .records import CatalogItem


def dedupe_by_image(items: Iterable[CatalogItem]) -> list[CatalogItem]:
    """Keep the first item seen for each image URL, preserving order.

    The image URL is the identity key, so distinct items sharing a
    placeholder image collapse into one.
    """

    seen: set[str] = set()
    unique: list[CatalogItem] = []
    for item in items:
        if item.image_url in seen:
            continue
        seen.add(item.image_url)
        unique.append(item)
    return unique


__all__ = ["dedupe_by_image"]
