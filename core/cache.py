"""Persistent registry cache.

SQLite-backed by default with an in-memory fallback when the database
cannot be opened. Entries are RegistrySnapshot dicts keyed by registry
lookup name and expire after a TTL given in seconds.
"""

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path

from .errors import CacheError
from .models import RegistrySnapshot

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = Path.home() / ".freshen" / "cache.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS registry_cache (
    package TEXT NOT NULL PRIMARY KEY,
    data TEXT NOT NULL,
    fetched_at INTEGER NOT NULL,
    expires_at INTEGER NOT NULL
)
"""
INDEX = "CREATE INDEX IF NOT EXISTS idx_expires ON registry_cache(expires_at)"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CacheStats:
    hits: int
    misses: int
    size: int


class SqliteCache:
    """Registry snapshots stored in a single SQLite table."""

    def __init__(self, path: str | Path = DEFAULT_CACHE_PATH):
        self.path = Path(path)
        self.hits = 0
        self.misses = 0
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.path), check_same_thread=False)
            self.conn.execute("PRAGMA journal_mode = WAL")
            self.conn.execute("PRAGMA synchronous = NORMAL")
            self.conn.execute(SCHEMA)
            self.conn.execute(INDEX)
            self.conn.execute("DELETE FROM registry_cache WHERE expires_at <= ?", (_now_ms(),))
            self.conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise CacheError(f"Cannot open cache database {self.path}: {e}") from e

    def get(self, key: str) -> RegistrySnapshot | None:
        try:
            row = self.conn.execute(
                "SELECT data FROM registry_cache WHERE package = ? AND expires_at > ?",
                (key, _now_ms()),
            ).fetchone()
        except sqlite3.Error as e:
            raise CacheError(f"Failed to read cache entry for {key}") from e

        if row is None:
            self.misses += 1
            return None

        try:
            snapshot = RegistrySnapshot.from_dict(json.loads(row[0]))
        except (ValueError, KeyError, TypeError):
            logger.debug("Dropping corrupt cache entry for %s", key)
            self.delete(key)
            self.misses += 1
            return None

        self.hits += 1
        return snapshot

    def set(self, key: str, snapshot: RegistrySnapshot, ttl: float) -> None:
        now = _now_ms()
        try:
            self.conn.execute(
                "INSERT OR REPLACE INTO registry_cache (package, data, fetched_at, expires_at) "
                "VALUES (?, ?, ?, ?)",
                (key, json.dumps(snapshot.to_dict()), now, now + int(ttl * 1000)),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise CacheError(f"Failed to write cache entry for {key}") from e

    def delete(self, key: str) -> None:
        try:
            self.conn.execute("DELETE FROM registry_cache WHERE package = ?", (key,))
            self.conn.commit()
        except sqlite3.Error as e:
            raise CacheError(f"Failed to delete cache entry for {key}") from e

    def clear(self) -> None:
        try:
            self.conn.execute("DELETE FROM registry_cache")
            self.conn.commit()
        except sqlite3.Error as e:
            raise CacheError("Failed to clear cache") from e

    def stats(self) -> CacheStats:
        try:
            (size,) = self.conn.execute(
                "SELECT COUNT(*) FROM registry_cache WHERE expires_at > ?", (_now_ms(),)
            ).fetchone()
        except sqlite3.Error as e:
            raise CacheError("Failed to read cache stats") from e
        return CacheStats(hits=self.hits, misses=self.misses, size=size)

    def close(self) -> None:
        try:
            self.conn.close()
        except sqlite3.Error as e:
            raise CacheError("Failed to close cache database") from e


class MemoryCache:
    """Process-local cache with the same interface as SqliteCache."""

    def __init__(self):
        self._store: dict[str, tuple[RegistrySnapshot, int]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> RegistrySnapshot | None:
        entry = self._store.get(key)
        if entry and entry[1] > _now_ms():
            self.hits += 1
            return entry[0]
        if entry:
            del self._store[key]
        self.misses += 1
        return None

    def set(self, key: str, snapshot: RegistrySnapshot, ttl: float) -> None:
        self._store[key] = (snapshot, _now_ms() + int(ttl * 1000))

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def stats(self) -> CacheStats:
        now = _now_ms()
        size = sum(1 for _, expires in self._store.values() if expires > now)
        return CacheStats(hits=self.hits, misses=self.misses, size=size)

    def close(self) -> None:
        self._store.clear()


def open_cache(path: str | Path | None = None) -> SqliteCache | MemoryCache:
    """Open the SQLite cache, falling back to memory when that fails."""
    try:
        return SqliteCache(path or DEFAULT_CACHE_PATH)
    except CacheError as e:
        logger.warning("%s; using an in-memory cache", e)
        return MemoryCache()
