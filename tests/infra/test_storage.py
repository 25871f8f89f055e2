from __future__ import annotations

from datetime import datetime, timedelta, timezone

from catalog_crawler.engine.records import CacheRecord, CatalogItem, Gender
from catalog_crawler.infra.storage import CacheStore, decode_record, encode_record

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _store(tmp_path, now: datetime = NOW, ttl_minutes: int = 10) -> CacheStore:
    return CacheStore(tmp_path / "cache" / "catalog.cache", timedelta(minutes=ttl_minutes), clock=lambda: now)


def _sample_items() -> list[CatalogItem]:
    return [
        CatalogItem(
            name="Dress",
            image_url="https://cdn.example/dress.jpg",
            publisher="Alice",
            category="Gear",
            detail_url="https://mods.example/modid/1",
            download_url="https://mods.example/dl/1.zip",
            gender=Gender.FEMALE,
            tags=["Outfit", "Summer"],
            last_updated=datetime(2024, 4, 2, 8, 30, tzinfo=timezone.utc),
            version="1.1",
        ),
        CatalogItem(name="Bare", image_url="https://cdn.example/bare.jpg"),
    ]


def test_save_then_load_reproduces_record(tmp_path) -> None:
    store = _store(tmp_path)
    record = store.build_record(_sample_items())
    assert record.expires_at == NOW + timedelta(minutes=10)
    assert store.save(record) is True
    assert store.load() == record


def test_encode_decode_preserves_fields() -> None:
    record = CacheRecord(items=_sample_items(), expires_at=NOW)
    decoded = decode_record(encode_record(record))
    assert decoded.items[0].last_updated == datetime(2024, 4, 2, 8, 30, tzinfo=timezone.utc)
    assert decoded.items[0].gender is Gender.FEMALE
    assert decoded.items[1].last_updated is None
    assert decoded.expires_at == NOW


def test_expired_record_is_a_miss(tmp_path) -> None:
    _store(tmp_path).save(_store(tmp_path).build_record(_sample_items()))
    later = _store(tmp_path, now=NOW + timedelta(minutes=11))
    assert later.load() is None
    assert later.path.exists()


def test_zero_ttl_is_always_expired(tmp_path) -> None:
    store = _store(tmp_path, ttl_minutes=0)
    store.save(store.build_record(_sample_items()))
    assert store.load() is None


def test_missing_file_is_a_miss(tmp_path) -> None:
    assert _store(tmp_path).load() is None


def test_corrupt_file_is_a_miss(tmp_path) -> None:
    store = _store(tmp_path)
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_bytes(b"\xc1not msgpack at all")
    assert store.load() is None


def test_wrong_shape_is_a_miss(tmp_path) -> None:
    store = _store(tmp_path)
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_bytes(b"\x93\x01\x02\x03")
    assert store.load() is None


def test_save_replaces_previous_record_without_leftovers(tmp_path) -> None:
    store = _store(tmp_path)
    store.save(store.build_record(_sample_items()))
    store.save(store.build_record(_sample_items()[:1]))
    loaded = store.load()
    assert loaded is not None
    assert [item.name for item in loaded.items] == ["Dress"]
    assert [path.name for path in store.path.parent.iterdir()] == ["catalog.cache"]


def test_save_failure_is_swallowed(tmp_path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory", encoding="utf-8")
    store = CacheStore(blocker / "catalog.cache", timedelta(minutes=1), clock=lambda: NOW)
    assert store.save(store.build_record(_sample_items())) is False


def test_invalidate_deletes_file_and_tolerates_missing(tmp_path) -> None:
    store = _store(tmp_path)
    store.invalidate()
    store.save(store.build_record([]))
    assert store.path.exists()
    store.invalidate()
    assert not store.path.exists()
    store.invalidate()
