"""Key-value cache with explicit TTL checked on read.

Two backends share the same interface:
- MemoryCache: per-process dict, for development and tests
- SqlCache: rows in the ``cache_entries`` table, shared by every worker
  pointing at the same database

Expired entries are never returned; they are dropped when read.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from inbox_health.store import CacheEntry, Database

logger = logging.getLogger(__name__)


class Cache(ABC):
    """Abstract cache interface."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value for ``key``, or None if missing or expired."""

    @abstractmethod
    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``.

        Args:
            key: Cache key.
            value: String value.
            ttl: Seconds until expiry. None or 0 keeps the entry until forgotten.
        """

    @abstractmethod
    def forget(self, key: str) -> None:
        """Remove ``key`` if present."""

    def _expiry(self, ttl: float | None) -> float | None:
        if not ttl:
            return None
        if ttl < 0:
            raise ValueError(f"ttl must not be negative, got {ttl}")
        return self._clock() + ttl

    def _expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and expires_at <= self._clock()


class MemoryCache(Cache):
    """In-process cache backed by a dict."""

    def __init__(self, clock: Callable[[], float] = time.time):
        super().__init__(clock)
        self._entries: dict[str, tuple[str, float | None]] = {}

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        self._entries[key] = (value, self._expiry(ttl))

    def forget(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class SqlCache(Cache):
    """Cache stored in the service database."""

    def __init__(self, db: Database, clock: Callable[[], float] = time.time):
        super().__init__(clock)
        self.db = db

    def get(self, key: str) -> str | None:
        with self.db.session() as session:
            entry = session.get(CacheEntry, key)
            if entry is None:
                return None
            if self._expired(entry.expires_at):
                session.delete(entry)
                logger.debug(f"Cache entry expired: {key}")
                return None
            return entry.value

    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = self._expiry(ttl)
        with self.db.session() as session:
            session.merge(CacheEntry(key=key, value=value, expires_at=expires_at))

    def forget(self, key: str) -> None:
        with self.db.session() as session:
            entry = session.get(CacheEntry, key)
            if entry is not None:
                session.delete(entry)


def create_cache(backend: str, db: Database | None = None) -> Cache:
    """Build the cache named by the CACHE_BACKEND setting."""
    if backend == "memory":
        return MemoryCache()
    if backend == "sql":
        if db is None:
            raise ValueError("The sql cache backend needs a database")
        return SqlCache(db)
    raise ValueError(f"Unknown cache backend: {backend}")
