"""Simple in-memory TTL cache for the public trailer and location catalogue."""

import time
from typing import Any


class TTLCache:
    """TTL cache using dict + monotonic timestamps."""

    def __init__(self, default_ttl: int = 300):
        """
        Initialize cache.

        Args:
            default_ttl: Default time-to-live in seconds (default: 5 min)
        """
        self._store: dict[str, tuple[Any, float]] = {}
        self._default_ttl = default_ttl

    def get(self, key: str) -> Any | None:
        """
        Get value by key if not expired.

        Returns:
            Cached value or None if missing/expired
        """
        entry = self._store.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if time.monotonic() > expires_at:
            del self._store[key]
            return None

        return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Set value with TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live in seconds (uses default if None)
        """
        if ttl is None:
            ttl = self._default_ttl
        self._store[key] = (value, time.monotonic() + ttl)

    def invalidate_prefix(self, prefix: str) -> None:
        """Remove every key starting with prefix."""
        for key in [k for k in self._store if k.startswith(prefix)]:
            del self._store[key]

    def clear(self) -> None:
        """Clear entire cache."""
        self._store.clear()


# Catalogue cache: trailer and location listings. Never holds availability.
catalog_cache = TTLCache(default_ttl=300)
