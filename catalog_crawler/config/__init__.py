"""Configuration package exports."""

from .loader import (
    ConfigLocator,
    ConfigRepository,
    SettingsSnapshot,
    parse_settings,
    parse_type_filters,
    settings_hash,
    settings_to_raw,
)
from .models import CatalogSettings, ItemType, SearchFilters, SortField, SortOrder

__all__ = [
    "CatalogSettings",
    "ConfigLocator",
    "ConfigRepository",
    "ItemType",
    "SearchFilters",
    "SettingsSnapshot",
    "SortField",
    "SortOrder",
    "parse_settings",
    "parse_type_filters",
    "settings_hash",
    "settings_to_raw",
]
