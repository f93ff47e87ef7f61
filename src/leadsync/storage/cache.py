"""In-memory cache bounded by entry count and per-entry TTL."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any

from ..core.config import load_app_settings
from ..core.models import CacheEntry, CacheStats

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class BoundedCache:
    """FIFO-evicting cache whose entries are never served past their expiry.

    Every read path re-checks the expiry instant, so expired entries are
    treated as absent even when nothing has purged them yet. Insertion order
    decides eviction: once full, the oldest surviving entry makes room for the
    new one regardless of how recently it was read.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl_seconds: float = 300,
        *,
        clock: Clock = _utc_now,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._cache: dict[str, CacheEntry] = {}
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds
        self._clock = clock

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` when missing or expired.

        A stored ``None`` reads the same as a miss under the default; pass a
        sentinel ``default`` (or use :meth:`has`) to tell them apart.
        """
        entry = self._live_entry(key)
        if entry is None:
            LOGGER.debug("Cache miss for key: %s", key)
            return default
        LOGGER.debug("Cache hit for key: %s", key)
        return entry.value

    def has(self, key: str) -> bool:
        """Return whether ``key`` holds a value that has not expired."""
        return self._live_entry(key) is not None

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds`` (default TTL if None)."""
        self._purge_expired()

        if key not in self._cache and len(self._cache) >= self._max_size:
            oldest_key = next(iter(self._cache))
            del self._cache[oldest_key]
            LOGGER.debug("Cache full, evicted oldest key: %s", oldest_key)

        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + timedelta(seconds=ttl)
        self._cache[key] = CacheEntry(value=value, expires_at=expires_at)
        LOGGER.debug("Cache set for key: %s (TTL: %ss)", key, ttl)

    def delete(self, key: str) -> bool:
        """Remove ``key``; return ``True`` when an entry existed."""
        return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        self._cache.clear()

    def size(self) -> int:
        """Return the number of live entries."""
        self._purge_expired()
        return len(self._cache)

    def keys(self) -> list[str]:
        """Return live keys in insertion order."""
        self._purge_expired()
        return list(self._cache)

    def stats(self) -> CacheStats:
        self._purge_expired()
        size = len(self._cache)
        return CacheStats(
            size=size,
            max_size=self._max_size,
            utilization=size / self._max_size * 100,
        )

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``; return the count."""
        doomed = [key for key in self._cache if key.startswith(prefix)]
        for key in doomed:
            del self._cache[key]
        if doomed:
            LOGGER.debug("Dropped %d cache entries under %r", len(doomed), prefix)
        return len(doomed)

    @staticmethod
    def make_key(*parts: str | int | None) -> str:
        """Return a stable digest of ``parts`` suitable as a cache key."""
        combined = "|".join(str(p) if p is not None else "None" for p in parts)
        return hashlib.md5(combined.encode("utf-8")).hexdigest()

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            LOGGER.debug("Cache expired for key: %s", key)
            del self._cache[key]
            return None
        return entry

    def _purge_expired(self) -> int:
        now = self._clock()
        expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]
        for key in expired_keys:
            del self._cache[key]
        if expired_keys:
            LOGGER.debug("Cleaned up %d expired cache entries", len(expired_keys))
        return len(expired_keys)


@lru_cache(maxsize=1)
def get_cache() -> BoundedCache:
    """Return the process-wide cache, constructing it on first use."""
    settings = load_app_settings().cache
    return BoundedCache(
        max_size=settings.max_size,
        default_ttl_seconds=settings.default_ttl_seconds,
    )


__all__ = ["BoundedCache", "get_cache"]
