"""Configuration loading helpers for Catalog-Crawler."""

from __future__ import annotations

import base64
import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import structlog
import yaml

from .models import CatalogSettings, ItemType, SearchFilters, SortField, SortOrder

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
SETTINGS_FILENAME = "settings.yaml"
CACHE_FILENAME = "catalog.cache"

_TRUE_VALUES = {"true", "yes", "on", "1"}
_FALSE_VALUES = {"false", "no", "off", "0"}

# field -> minimum accepted value
_INT_FIELDS: dict[str, int] = {
    "request_delay_ms": 0,
    "max_retries": 0,
    "max_pages": 1,
    "cache_ttl_minutes": 0,
    "enrichment_concurrency": 1,
}
_BOOL_FIELDS = ("parallel_page_fetching", "reduced_delay_for_parallel")


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


# ----------------------------------------------------------------------
# Raw mapping -> typed settings
# ----------------------------------------------------------------------
def _parse_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _parse_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None


def _parse_type_token(token: Any) -> int | None:
    if isinstance(token, ItemType):
        return int(token)
    number = _parse_int(token)
    if number is not None:
        return number
    if isinstance(token, str):
        name = token.strip().strip("\"'")
        if not name:
            return None
        number = _parse_int(name)
        if number is not None:
            return number
        member = _ITEM_TYPES_BY_KEY.get(_type_key(name))
        return int(member) if member is not None else None
    return None


def _type_key(name: str) -> str:
    return "".join(ch for ch in name.upper() if ch.isalnum())


_ITEM_TYPES_BY_KEY = {_type_key(member.name): member for member in ItemType}


def parse_type_filters(value: Any) -> tuple[int, ...]:
    """Parse a type filter from a list, an int, or a comma separated string.

    A string of the form ``"[1, 2]"`` is accepted as well. Entries that are
    neither integers nor :class:`ItemType` names are skipped.
    """

    if value is None:
        return ()
    if isinstance(value, (list, tuple, set)):
        tokens: list[Any] = list(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
        tokens = text.split(",")
    else:
        tokens = [value]
    parsed: list[int] = []
    for token in tokens:
        number = _parse_type_token(token)
        if number is not None:
            parsed.append(number)
    return tuple(parsed)


def parse_settings(
    raw: Mapping[str, Any] | None,
    logger: structlog.BoundLogger | None = None,
) -> CatalogSettings:
    """Build a :class:`CatalogSettings` from an untyped mapping.

    The function is total: every key that is missing, unparsable or out of
    range keeps its default and a ``setting_rejected`` warning is logged.
    Unknown keys are ignored.
    """

    log = logger or structlog.get_logger("catalog_crawler.config")
    raw = dict(raw or {})
    defaults = CatalogSettings()
    values: dict[str, Any] = {}

    def reject(key: str, value: Any, default: Any) -> None:
        log.warning("setting_rejected", key=key, value=repr(value), default=repr(default))

    def accept(key: str, value: Any) -> None:
        values[key] = value
        log.info("setting_applied", key=key, value=value if key != "session_token" else "***")

    if "base_url" in raw:
        text = str(raw["base_url"] or "").strip()
        if text.startswith(("http://", "https://")):
            accept("base_url", text.rstrip("/"))
        else:
            reject("base_url", raw["base_url"], defaults.base_url)

    if "session_token" in raw:
        token = raw["session_token"]
        values["session_token"] = None if token is None else str(token)

    for key in ("user_agent", "cookie_name"):
        if key in raw:
            text = str(raw[key] or "").strip()
            if text:
                accept(key, text)
            else:
                reject(key, raw[key], getattr(defaults, key))

    for key, minimum in _INT_FIELDS.items():
        if key not in raw:
            continue
        number = _parse_int(raw[key])
        if number is not None and number >= minimum:
            accept(key, number)
        else:
            reject(key, raw[key], getattr(defaults, key))

    if "timeout_seconds" in raw:
        try:
            timeout = float(raw["timeout_seconds"])
        except (TypeError, ValueError):
            timeout = 0.0
        if timeout > 0:
            accept("timeout_seconds", timeout)
        else:
            reject("timeout_seconds", raw["timeout_seconds"], defaults.timeout_seconds)

    for key in _BOOL_FIELDS:
        if key not in raw:
            continue
        flag = _parse_bool(raw[key])
        if flag is None:
            reject(key, raw[key], getattr(defaults, key))
        else:
            accept(key, flag)

    values["filters"] = _parse_filters(raw, defaults.filters, accept, reject, log)
    return CatalogSettings(**values)


def _parse_filters(
    raw: dict[str, Any],
    default: SearchFilters,
    accept,
    reject,
    log: structlog.BoundLogger,
) -> SearchFilters:
    filter_values: dict[str, Any] = {}

    if "type_filters" in raw:
        types = parse_type_filters(raw["type_filters"])
        if types:
            filter_values["type_filters"] = types
            accept("type_filters", list(types))
        else:
            # 空列表或无法解析时抓取全部类型
            log.info("type_filters_empty", value=repr(raw["type_filters"]))

    if "sort_by" in raw:
        candidate = str(raw["sort_by"] or "").strip()
        if candidate in {field.value for field in SortField}:
            filter_values["sort_by"] = SortField(candidate)
            accept("sort_by", candidate)
        else:
            reject("sort_by", raw["sort_by"], default.sort_by.value)

    if "sort_order" in raw:
        candidate = str(raw["sort_order"] or "").strip()
        if candidate in {order.value for order in SortOrder}:
            filter_values["sort_order"] = SortOrder(candidate)
            accept("sort_order", candidate)
        else:
            reject("sort_order", raw["sort_order"], default.sort_order.value)

    if "compatibility" in raw:
        number = _parse_int(raw["compatibility"])
        if number is not None and 0 <= number <= 3:
            filter_values["compatibility"] = number
            accept("compatibility", number)
        else:
            reject("compatibility", raw["compatibility"], default.compatibility)

    return SearchFilters(**filter_values)


def settings_to_raw(settings: CatalogSettings) -> dict[str, Any]:
    """Flatten settings back into the mapping shape accepted by ``parse_settings``."""

    payload = settings.model_dump(mode="json", exclude={"filters"})
    payload.update(settings.filters.model_dump(mode="json"))
    return payload


def settings_hash(settings: CatalogSettings) -> str:
    """Return a stable base64 SHA-256 digest of the settings snapshot."""

    canonical = json.dumps(
        settings.model_dump(mode="json"), sort_keys=True, separators=(",", ":")
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


@dataclass(frozen=True, slots=True)
class SettingsSnapshot:
    """Typed settings plus the hash used to detect configuration changes."""

    settings: CatalogSettings
    hash: str

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | None) -> "SettingsSnapshot":
        settings = parse_settings(raw)
        return cls(settings=settings, hash=settings_hash(settings))


# ----------------------------------------------------------------------
# Filesystem layout
# ----------------------------------------------------------------------
@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    cache_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("CATALOG_CRAWLER_HOME")
        if self.project_root is not None:
            root = Path(self.project_root).resolve()
        elif env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = Path(__file__).resolve().parents[2]
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.cache_dir = (self.data_dir / "cache").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.cache_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def settings_path(self) -> Path:
        """Return the first existing ``settings.{yaml,yml,json}``, defaulting to YAML."""

        stem = Path(SETTINGS_FILENAME).stem
        for extension in CONFIG_EXTENSIONS:
            candidate = self.data_dir / f"{stem}{extension}"
            if candidate.exists():
                return candidate
        return self.data_dir / SETTINGS_FILENAME

    def cache_path(self) -> Path:
        return self.cache_dir / CACHE_FILENAME


class ConfigRepository:
    """Repository encapsulating settings IO and parsing."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()

    def load_raw_settings(self) -> dict[str, Any]:
        path = self.locator.settings_path()
        if not path.exists():
            self.save_settings(CatalogSettings())
        return _read_file(path)

    def load_settings(self) -> SettingsSnapshot:
        return SettingsSnapshot.from_raw(self.load_raw_settings())

    def save_settings(self, settings: CatalogSettings) -> Path:
        path = self.locator.settings_path()
        _write_file(path, settings_to_raw(settings))
        return path


__all__ = [
    "CONFIG_EXTENSIONS",
    "ConfigLocator",
    "ConfigRepository",
    "SettingsSnapshot",
    "parse_settings",
    "parse_type_filters",
    "settings_hash",
    "settings_to_raw",
]
