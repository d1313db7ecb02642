"""Snapshot persistence keyed by normalised request path.

Layout
------
Each cache key hashes to its own directory below the driver root::

    <sha256[:2]>/<sha256>/index.html   rendered body
    <sha256[:2]>/<sha256>/meta.json    {"key", "rendered_at", "ttl_ms"}

``get`` and ``put`` agree on location through the hash alone; no index
file exists.  The body is written before the metadata, so a snapshot
becomes visible only once both files are complete.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from typing import Optional

from prerenderer.errors import StorageError
from prerenderer.logger import get_logger
from prerenderer.models import CacheKey, SnapshotRecord, SnapshotStatus
from prerenderer.storage.drivers import StorageDriver

logger = get_logger("storage")

BODY_FILE = "index.html"
META_FILE = "meta.json"


def snapshot_dir(key: CacheKey) -> str:
    """Return the driver-relative directory for *key*."""
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{digest[:2]}/{digest}"


class SnapshotStore:
    """Async facade over a :class:`StorageDriver` for rendered snapshots.

    Args:
        driver: Backend that actually holds the files.
        default_ttl_ms: TTL applied by :meth:`put` when none is given.
            ``0``/``None`` means snapshots never expire.
    """

    def __init__(self, driver: StorageDriver, default_ttl_ms: Optional[int] = None) -> None:
        self.driver = driver
        self.default_ttl_ms = default_ttl_ms or None

    # ------------------------------------------------------------------
    # Sync helpers (run in a worker thread)
    # ------------------------------------------------------------------
    def _load(self, key: CacheKey) -> Optional[SnapshotRecord]:
        directory = snapshot_dir(key)
        meta_path = f"{directory}/{META_FILE}"
        if not self.driver.exists(meta_path):
            return None
        body_path = f"{directory}/{BODY_FILE}"
        if not self.driver.exists(body_path):
            return None
        try:
            meta = json.loads(self.driver.read(meta_path))
            rendered_at = float(meta["rendered_at"])
            ttl_ms = meta.get("ttl_ms")
            if ttl_ms is not None:
                ttl_ms = int(ttl_ms)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
            raise StorageError(f"Corrupt snapshot metadata for {key!r}", exc) from exc
        return SnapshotRecord(
            key=meta.get("key", key),
            html=self.driver.read(body_path),
            rendered_at=rendered_at,
            ttl_ms=ttl_ms,
        )

    def _store(self, record: SnapshotRecord) -> None:
        directory = snapshot_dir(record.key)
        self.driver.ensure_dir(directory)
        self.driver.write(f"{directory}/{BODY_FILE}", record.html)
        self.driver.write(f"{directory}/{META_FILE}", json.dumps(record.metadata()))

    def _discard_if_unchanged(self, key: CacheKey, rendered_at: float) -> None:
        """Delete *key* unless a newer render replaced it in the meantime."""
        current = self._load(key)
        if current is not None and current.rendered_at == rendered_at:
            self.driver.delete(snapshot_dir(key))

    def _keys(self) -> list[CacheKey]:
        keys: list[CacheKey] = []
        for shard in self.driver.ls(""):
            for digest in self.driver.ls(shard):
                meta_path = f"{shard}/{digest}/{META_FILE}"
                if not self.driver.exists(meta_path):
                    continue
                try:
                    keys.append(json.loads(self.driver.read(meta_path))["key"])
                except (StorageError, json.JSONDecodeError, KeyError, TypeError):
                    logger.warning("Skipping unreadable snapshot metadata at %s", meta_path)
        return sorted(keys)

    def _clear(self) -> None:
        for entry in self.driver.ls(""):
            self.driver.delete(entry)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def get(self, key: CacheKey) -> Optional[SnapshotRecord]:
        """Return the fresh snapshot for *key*, or ``None``.

        An expired snapshot counts as absent and is deleted best-effort;
        a failure during that cleanup is logged, not raised.
        """
        record = await asyncio.to_thread(self._load, key)
        if record is None:
            return None
        if record.is_expired():
            logger.info("Snapshot for %s expired (age %.0f ms)", key, record.age_ms())
            try:
                await asyncio.to_thread(self._discard_if_unchanged, key, record.rendered_at)
            except StorageError as exc:
                logger.warning("Could not remove stale snapshot for %s: %s", key, exc)
            return None
        return record

    async def inspect(self, key: CacheKey) -> SnapshotRecord:
        """Return the snapshot for *key* with its status, without cleanup."""
        record = await asyncio.to_thread(self._load, key)
        if record is None:
            return SnapshotRecord(key=key, html="", rendered_at=0.0, status=SnapshotStatus.ABSENT)
        record.status = SnapshotStatus.STALE if record.is_expired() else SnapshotStatus.FRESH
        return record

    async def put(self, key: CacheKey, html: str, ttl_ms: Optional[int] = None) -> SnapshotRecord:
        record = SnapshotRecord(
            key=key,
            html=html,
            rendered_at=time.time(),
            ttl_ms=ttl_ms if ttl_ms is not None else self.default_ttl_ms,
        )
        await asyncio.to_thread(self._store, record)
        logger.debug("Stored snapshot for %s (%d bytes)", key, len(html))
        return record

    async def invalidate(self, key: CacheKey) -> None:
        await asyncio.to_thread(self.driver.delete, snapshot_dir(key))
        logger.info("Invalidated snapshot for %s", key)

    async def invalidate_all(self) -> None:
        await asyncio.to_thread(self._clear)
        logger.info("Invalidated all snapshots")

    async def keys(self) -> list[CacheKey]:
        """Return every stored cache key, fresh or stale."""
        return await asyncio.to_thread(self._keys)
