from __future__ import annotations

import json
from pathlib import Path

import pytest
from structlog.testing import capture_logs
import yaml

from catalog_crawler.config.loader import (
    ConfigLocator,
    ConfigRepository,
    SettingsSnapshot,
    parse_settings,
    parse_type_filters,
    settings_hash,
    settings_to_raw,
)
from catalog_crawler.config.models import CatalogSettings, SearchFilters, SortField, SortOrder


def test_config_locator_uses_env_and_creates_directories(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("CATALOG_CRAWLER_HOME", str(tmp_path))
    locator = ConfigLocator()
    assert locator.project_root == tmp_path.resolve()
    for path in (locator.data_dir, locator.cache_dir, locator.logs_dir):
        assert path.exists()
    assert locator.settings_path().relative_to(tmp_path.resolve()) == Path("data/settings.yaml")
    assert locator.cache_path().relative_to(tmp_path.resolve()) == Path("data/cache/catalog.cache")


def test_repository_writes_defaults_when_missing(temp_config_repository: ConfigRepository) -> None:
    snapshot = temp_config_repository.load_settings()
    assert temp_config_repository.locator.settings_path().exists()
    assert snapshot.settings == CatalogSettings()
    assert snapshot.hash == settings_hash(CatalogSettings())


def test_repository_roundtrip(temp_config_repository: ConfigRepository) -> None:
    settings = CatalogSettings(
        session_token="abc",
        max_pages=5,
        filters=SearchFilters(type_filters=(1, 2), sort_by=SortField.VIEWS),
    )
    path = temp_config_repository.save_settings(settings)
    stored = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert stored["type_filters"] == [1, 2]
    assert stored["sort_by"] == "views"
    assert temp_config_repository.load_settings().settings == settings


def test_repository_reads_json_settings(temp_config_repository: ConfigRepository) -> None:
    path = temp_config_repository.locator.data_dir / "settings.json"
    path.write_text(json.dumps({"max_pages": 6, "sort_order": "asc"}), encoding="utf-8")
    assert temp_config_repository.locator.settings_path() == path
    settings = temp_config_repository.load_settings().settings
    assert settings.max_pages == 6
    assert settings.filters.sort_order is SortOrder.ASC


def test_parse_settings_applies_valid_values() -> None:
    settings = parse_settings(
        {
            "base_url": "https://mods.example/",
            "session_token": "token",
            "request_delay_ms": "250",
            "max_pages": 4,
            "parallel_page_fetching": "no",
            "type_filters": "Gear, hair, 13",
            "sort_by": "downloads",
            "sort_order": "asc",
            "compatibility": "3",
            "unknown_key": "ignored",
        }
    )
    assert settings.base_url == "https://mods.example"
    assert settings.session_token == "token"
    assert settings.request_delay_ms == 250
    assert settings.max_pages == 4
    assert settings.parallel_page_fetching is False
    assert settings.filters == SearchFilters(
        type_filters=(1, 4, 13),
        sort_by=SortField.DOWNLOADS,
        sort_order=SortOrder.ASC,
        compatibility=3,
    )


def test_parse_settings_falls_back_and_logs_rejections() -> None:
    with capture_logs() as logs:
        settings = parse_settings(
            {
                "base_url": "ftp://nowhere",
                "max_pages": 0,
                "max_retries": "many",
                "reduced_delay_for_parallel": "perhaps",
                "sort_by": "popularity",
                "compatibility": 9,
            }
        )
    defaults = CatalogSettings()
    assert settings == defaults
    rejected = {entry["key"] for entry in logs if entry["event"] == "setting_rejected"}
    assert rejected == {
        "base_url",
        "max_pages",
        "max_retries",
        "reduced_delay_for_parallel",
        "sort_by",
        "compatibility",
    }
    assert all(entry["log_level"] == "warning" for entry in logs if entry["event"] == "setting_rejected")


def test_parse_settings_masks_token_in_logs() -> None:
    with capture_logs() as logs:
        parse_settings({"session_token": "secret", "user_agent": "Agent/2"})
    assert all("secret" not in repr(entry) for entry in logs)


def test_parse_settings_accepts_none() -> None:
    assert parse_settings(None) == CatalogSettings()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ([1, 2, 3], (1, 2, 3)),
        (7, (7,)),
        ("1,2", (1, 2)),
        ("[5, 6]", (5, 6)),
        ("Gear, ReshadePreset, racial_scaling", (1, 5, 12)),
        ("1, bogus, , 4", (1, 4)),
        ("", ()),
        (None, ()),
    ],
)
def test_parse_type_filters(raw, expected) -> None:
    assert parse_type_filters(raw) == expected


def test_settings_hash_is_stable_and_sensitive() -> None:
    base = CatalogSettings()
    assert settings_hash(base) == settings_hash(CatalogSettings())
    assert settings_hash(base) != settings_hash(CatalogSettings(max_pages=3))
    assert settings_hash(base) != settings_hash(
        CatalogSettings(filters=SearchFilters(compatibility=0))
    )


def test_settings_to_raw_roundtrips_through_parser() -> None:
    settings = CatalogSettings(
        request_delay_ms=10,
        filters=SearchFilters(type_filters=(2,), sort_order=SortOrder.ASC),
    )
    assert parse_settings(settings_to_raw(settings)) == settings


def test_settings_snapshot_from_raw() -> None:
    snapshot = SettingsSnapshot.from_raw({"max_pages": 3})
    assert snapshot.settings.max_pages == 3
    assert snapshot.hash == settings_hash(snapshot.settings)
