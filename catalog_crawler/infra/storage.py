"""On-disk msgpack cache holding the last enriched catalog."""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import msgpack
import structlog

from ..engine.records import CacheRecord, CatalogItem, to_utc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def encode_record(record: CacheRecord) -> bytes:
    payload = {
        "items": [item.to_dict() for item in record.items],
        "expires_at": to_utc(record.expires_at),
    }
    return msgpack.packb(payload, use_bin_type=True, datetime=True)


def decode_record(data: bytes) -> CacheRecord:
    payload = msgpack.unpackb(data, raw=False, timestamp=3)
    if not isinstance(payload, dict):
        raise ValueError("Cache payload must be a mapping")
    return CacheRecord(
        items=[CatalogItem.from_dict(entry) for entry in payload["items"]],
        expires_at=payload["expires_at"],
    )


class CacheStore:
    """Load, save and invalidate the single cache file.

    Read and write failures are logged and treated as a cold cache; they
    never propagate to the caller.
    """

    def __init__(
        self,
        path: Path,
        ttl: timedelta,
        clock: Callable[[], datetime] = _utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.path = Path(path)
        self.ttl = ttl
        self.clock = clock
        self.logger = logger or structlog.get_logger("catalog_crawler.cache")

    def build_record(self, items: list[CatalogItem]) -> CacheRecord:
        return CacheRecord(items=list(items), expires_at=self.clock() + self.ttl)

    def load(self) -> CacheRecord | None:
        """Return the stored record, or ``None`` when absent, unreadable or expired."""

        if not self.path.exists():
            return None
        try:
            record = decode_record(self.path.read_bytes())
        except Exception as exc:  # noqa: BLE001
            self.logger.error("cache_load_failed", path=str(self.path), error=str(exc))
            return None
        if record.is_expired(self.clock()):
            self.logger.debug(
                "cache_expired", path=str(self.path), expired_at=record.expires_at.isoformat()
            )
            return None
        return record

    def save(self, record: CacheRecord) -> bool:
        """Atomically replace the cache file; returns ``False`` when the write failed."""

        tmp_name: str | None = None
        try:
            data = encode_record(record)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "wb", dir=self.path.parent, prefix=f".{self.path.name}.", delete=False
            ) as stream:
                tmp_name = stream.name
                stream.write(data)
                stream.flush()
                os.fsync(stream.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except Exception as exc:  # noqa: BLE001
            self.logger.error("cache_save_failed", path=str(self.path), error=str(exc))
            return False
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
        self.logger.debug(
            "cache_saved",
            path=str(self.path),
            items=len(record.items),
            expires_at=record.expires_at.isoformat(),
        )
        return True

    def invalidate(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            self.logger.error("cache_delete_failed", path=str(self.path), error=str(exc))
            return
        self.logger.debug("cache_deleted", path=str(self.path))


__all__ = ["CacheStore", "decode_record", "encode_record"]
