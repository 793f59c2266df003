"""
Caching utilities for the application.
"""

import time
from typing import Any


class Cache:
    """Simple in-memory cache with TTL (Time To Live) support.

    Memoizes slide relevance rankings. Audio bytes live in ``services.audio_cache`` instead.
    """

    def __init__(self, default_ttl: float = 3600) -> None:
        """Initialize empty cache."""
        self.default_ttl = default_ttl
        self._cache: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Any | None:
        """
        Get value from cache by key.

        Args:
            key: Cache key

        Returns:
            Cached value if exists and not expired, None otherwise
        """
        item = self._cache.get(key)
        if item is None:
            return None
        value, expires_at = item
        if time.monotonic() >= expires_at:
            del self._cache[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """
        Set value in cache with TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Time to live in seconds (defaults to ``default_ttl``)
        """
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        self._cache[key] = (value, time.monotonic() + ttl)

    def delete(self, key: str) -> None:
        """Delete value from cache."""
        self._cache.pop(key, None)

    def clear(self) -> int:
        """Clear all cached values and return how many were dropped."""
        count = len(self._cache)
        self._cache.clear()
        return count

    def size(self) -> int:
        """Number of items currently held (expired items included until swept)."""
        return len(self._cache)

    def cleanup_expired(self) -> int:
        """
        Remove expired items from cache.

        Returns:
            Number of expired items removed
        """
        now = time.monotonic()
        expired_keys = [key for key, (_, expires_at) in self._cache.items() if now >= expires_at]

        for key in expired_keys:
            del self._cache[key]

        return len(expired_keys)
