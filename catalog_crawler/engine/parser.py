"""Listing and detail page extraction helpers.

Both extractors are pure: they receive already fetched markup and return
plain values, using ``None`` or empty values when a node is missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import unescape
from urllib.parse import unquote, urljoin

import structlog
from selectolax.lexbor import LexborHTMLParser, LexborNode

from .records import CatalogItem, Gender, to_utc

logger = structlog.get_logger("catalog_crawler.parser")

CARD_SELECTOR = "div.mod-card"
DOWNLOAD_SELECTOR = "a#mod-download-link"
TAG_SELECTORS = ("div.mod-tags a", "a.mod-tag", "span.mod-tag")
INFO_SELECTOR = "code.text-light"
VERSION_LABELS = ("Version:",)
LAST_UPDATE_LABELS = ("Last Version Update:", "Last Updated:")
_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
    "%a, %d %b %Y %H:%M:%S %Z",
    "%d %B %Y",
    "%B %d, %Y",
)


@dataclass(slots=True)
class DetailRecord:
    """Fields only available on an item's detail page."""

    download_url: str | None = None
    tags: list[str] = field(default_factory=list)
    last_updated: datetime | None = None
    version: str = ""


def _text(node: LexborNode | None) -> str:
    if node is None:
        return ""
    return (node.text(separator=" ", strip=True) or "").strip()


def _attr(node: LexborNode | None, name: str) -> str:
    if node is None:
        return ""
    return (node.attributes.get(name) or "").strip()


def normalize_name(text: str) -> str:
    """Collapse whitespace in node text; entities are already decoded by the parser."""

    return " ".join((text or "").split())


def _labelled_value(text: str, labels: tuple[str, ...]) -> str | None:
    lowered = text.lower()
    for label in labels:
        if lowered.startswith(label.lower()):
            return text[len(label):].strip()
    return None


def split_listing(html: str) -> list[LexborNode]:
    """Return the listing card fragments of one search results page."""

    return LexborHTMLParser(html).css(CARD_SELECTOR)


def parse_listing_card(card: LexborNode, base_url: str) -> CatalogItem | None:
    """Turn one listing card into a candidate item.

    Returns ``None`` when the card has no name or no image.
    """

    name = normalize_name(_text(card.css_first("h5.card-title")))
    if not name:
        return None

    image_url = _attr(card.css_first("img.card-img-top"), "src")
    if not image_url:
        logger.warning("listing_image_missing", name=name)
        return None

    href = _attr(card.css_first("a[href]"), "href")
    detail_url = urljoin(base_url + "/", href) if href else ""
    publisher = _text(card.css_first("p.card-text a[href]"))

    category = ""
    gender_label = ""
    for node in card.css(INFO_SELECTOR):
        text = _text(node)
        value = _labelled_value(text, ("Type:",))
        if value is not None:
            category = value
            continue
        value = _labelled_value(text, ("Genders:",))
        if value is not None:
            gender_label = value

    return CatalogItem(
        name=name,
        image_url=image_url,
        publisher=publisher,
        category=category,
        detail_url=detail_url,
        gender=Gender.from_label(gender_label),
    )


def normalize_download_url(raw: str, base_url: str) -> str | None:
    """Produce a consistently escaped download URL from a raw ``href``.

    Markup mixes entity-encoded and percent-encoded segments, so the value is
    fully decoded first and only spaces and apostrophes are re-encoded.
    """

    value = unescape(raw or "").strip()
    if not value:
        return None
    if value.startswith("/"):
        value = base_url.rstrip("/") + value
    value = unquote(value)
    return value.replace(" ", "%20").replace("'", "%27")


def parse_timestamp(raw: str | None) -> datetime | None:
    """Parse a last-update value into an aware UTC datetime, or ``None``."""

    text = (raw or "").strip()
    if not text:
        return None
    if text.isdigit():
        number = int(text)
        # 13 位时间戳按毫秒处理
        seconds = number / 1000 if number > 10**11 else number
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    normalized = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return to_utc(datetime.fromisoformat(normalized))
    except ValueError:
        pass
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return to_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


def _parse_tags(parser: LexborHTMLParser) -> list[str]:
    """Collect tags in document order; a tag matched by several selectors is kept once."""

    tags: list[str] = []
    for selector in TAG_SELECTORS:
        for node in parser.css(selector):
            tag = normalize_name(_text(node))
            if tag and tag not in tags:
                tags.append(tag)
    return tags


def parse_detail(html: str, base_url: str) -> DetailRecord:
    """Extract the download link, tags, version and last update of a detail page.

    Every field is resolved independently of the others.
    """

    parser = LexborHTMLParser(html)
    record = DetailRecord()

    anchor = parser.css_first(DOWNLOAD_SELECTOR)
    if anchor is not None:
        record.download_url = normalize_download_url(_attr(anchor, "href"), base_url)

    record.tags = _parse_tags(parser)

    last_update_raw: str | None = None
    for node in parser.css(INFO_SELECTOR):
        text = _text(node)
        version = _labelled_value(text, VERSION_LABELS)
        if version is not None and not record.version:
            record.version = version
            continue
        stamp = _labelled_value(text, LAST_UPDATE_LABELS)
        if stamp is not None and last_update_raw is None:
            last_update_raw = stamp

    if not record.version:
        record.version = _text(parser.css_first("#mod-version"))
    if last_update_raw is None:
        time_node = parser.css_first("time.last-version-update")
        last_update_raw = _attr(time_node, "datetime") or _text(time_node)
    record.last_updated = parse_timestamp(last_update_raw)
    return record


__all__ = [
    "DetailRecord",
    "normalize_download_url",
    "normalize_name",
    "parse_detail",
    "parse_listing_card",
    "parse_timestamp",
    "split_listing",
]
