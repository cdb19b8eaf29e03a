"""Stage output cache shared by every job, keyed by input fingerprint."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from persistence.hashing import sha256_bytes, stage_fingerprint
from persistence.models import CacheEntry
from persistence.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)

_CACHEABLE_STAGES = {
    "research",
    "draft",
}


@dataclass(frozen=True)
class CacheResult:
    output: dict[str, Any]
    cache_hit: bool
    cache_key: str


class StageCache:
    """Read-through cache with single-flight computation per fingerprint.

    Payloads live as JSON files under ``<base_dir>/cache/<stage>/`` and are
    indexed in SQLite together with a content hash, so a truncated or edited
    file is detected on read and treated as a miss.
    """

    def __init__(self, base_dir: str | Path, store: SqliteStore, *, scope: str = "deterministic") -> None:
        self._base_dir = Path(base_dir)
        self._cache_dir = self._base_dir / "cache"
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self._store = store
        self._scope = scope.strip().lower() if scope else "none"
        self._lock = threading.Lock()
        self._inflight: dict[tuple[str, str], Future] = {}

    @property
    def scope(self) -> str:
        return self._scope

    def enabled_for(self, stage: str) -> bool:
        if self._scope == "deterministic":
            return stage in _CACHEABLE_STAGES
        return False

    def fingerprint(self, stage: str, inputs: Mapping[str, str]) -> str:
        return stage_fingerprint(stage, inputs)

    def get_or_compute(
        self,
        stage: str,
        inputs: Mapping[str, str],
        compute: Callable[[], dict[str, Any]],
        *,
        is_valid: Callable[[dict[str, Any]], bool] | None = None,
    ) -> CacheResult:
        if stage not in _CACHEABLE_STAGES:
            raise ValueError(f"Stage is never cached: {stage}")
        key = self.fingerprint(stage, inputs)
        if not self.enabled_for(stage):
            return CacheResult(output=compute(), cache_hit=False, cache_key=key)

        cached = self.get_json(stage=stage, key=key, is_valid=is_valid)
        if cached is not None:
            return CacheResult(output=cached, cache_hit=True, cache_key=key)

        with self._lock:
            future = self._inflight.get((stage, key))
            owner = future is None
            if future is None:
                future = Future()
                self._inflight[(stage, key)] = future

        if not owner:
            logger.debug("Waiting for in-flight %s computation %s", stage, key[:12])
            return CacheResult(output=future.result(), cache_hit=True, cache_key=key)

        try:
            cached = self.get_json(stage=stage, key=key, is_valid=is_valid)
            if cached is not None:
                future.set_result(cached)
                return CacheResult(output=cached, cache_hit=True, cache_key=key)
            output = compute()
            self._persist(stage, key, output)
            future.set_result(output)
            return CacheResult(output=output, cache_hit=False, cache_key=key)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        finally:
            with self._lock:
                self._inflight.pop((stage, key), None)

    def get_json(
        self,
        *,
        stage: str,
        key: str,
        is_valid: Callable[[dict[str, Any]], bool] | None = None,
    ) -> dict[str, Any] | None:
        if not self.enabled_for(stage):
            return None
        try:
            entry = self._store.get_cache_entry(stage=stage, cache_key=key)
        except sqlite3.Error:
            logger.warning("Cache index read failed for %s/%s; treating as miss", stage, key[:12], exc_info=True)
            return None
        if entry is None:
            return None
        payload = self._read_payload(entry)
        if payload is not None and is_valid is not None and not is_valid(payload):
            payload = None
        if payload is None:
            logger.warning("Discarding corrupted cache entry %s/%s", stage, key[:12])
            self._discard(entry)
            return None
        self._store.touch_cache_entry(stage=stage, cache_key=key)
        return payload

    def invalidate(self, *, stage: str | None = None, key: str | None = None) -> int:
        entries = self._store.list_cache_entries(stage=stage)
        removed = 0
        for entry in entries:
            if key is not None and entry.cache_key != key:
                continue
            self._discard(entry)
            removed += 1
        return removed

    def stats(self) -> list[dict[str, Any]]:
        return self._store.list_cache_stats()

    def prune_older_than(self, *, days: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        entries = self._store.list_cache_entries_older_than(cutoff)
        for entry in entries:
            self._discard(entry)
        return len(entries)

    def _persist(self, stage: str, key: str, payload: dict[str, Any]) -> None:
        text = json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2)
        content_hash = sha256_bytes(text.encode("utf-8"))
        path = self._cache_path(stage, key, content_hash)
        entry = CacheEntry(
            cache_key=key,
            stage=stage,
            content_hash=content_hash,
            path=str(path),
            model=payload.get("model") if isinstance(payload.get("model"), str) else None,
            created_at=datetime.now(timezone.utc),
            last_accessed=None,
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
            if not self._store.insert_cache_entry(entry):
                logger.info("Cache entry %s/%s already present; keeping existing", stage, key[:12])
                existing = self._store.get_cache_entry(stage=stage, cache_key=key)
                if existing is None or Path(existing.path) != path:
                    path.unlink(missing_ok=True)
        except (OSError, sqlite3.Error):
            logger.warning("Failed to persist cache entry %s/%s", stage, key[:12], exc_info=True)

    def _read_payload(self, entry: CacheEntry) -> dict[str, Any] | None:
        path = Path(entry.path)
        try:
            raw = path.read_bytes()
        except OSError:
            return None
        if sha256_bytes(raw) != entry.content_hash:
            return None
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        return payload if isinstance(payload, dict) else None

    def _discard(self, entry: CacheEntry) -> None:
        path = Path(entry.path)
        if path.exists():
            path.unlink()
        self._store.delete_cache_entry(stage=entry.stage, cache_key=entry.cache_key)

    def _cache_path(self, stage: str, key: str, content_hash: str) -> Path:
        return self._cache_dir / stage / f"{key}.{content_hash[:12]}.json"


__all__ = ["CacheResult", "StageCache"]
