"""
Deduplication Cache

In-memory set of keys with a fixed time-to-live. Used to suppress repeated
warnings for the same event within a cooldown window.

The cache is per process and not durable: a restart forgets every key.
"""

import time
from collections.abc import Callable, Hashable

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class DedupCache:
    """
    Keys expire ``ttl_seconds`` after they were added.

    Args:
        ttl_seconds: Lifetime of each key
        time_func: Monotonic clock in seconds; injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        time_func: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._time = time_func
        # Format: {key: expires_at}
        self._store: dict[Hashable, float] = {}

    def contains(self, key: Hashable) -> bool:
        """True if ``key`` was added and has not expired yet."""
        expires_at = self._store.get(key)
        if expires_at is None:
            return False
        if expires_at <= self._time():
            del self._store[key]
            return False
        return True

    def add(self, key: Hashable) -> None:
        """Record ``key``; re-adding restarts its lifetime."""
        self._store[key] = self._time() + self.ttl_seconds

    def purge_expired(self) -> int:
        """Drop expired keys. Returns how many were removed."""
        now = self._time()
        expired = [key for key, expires_at in self._store.items() if expires_at <= now]
        for key in expired:
            del self._store[key]
        return len(expired)

    def __contains__(self, key: Hashable) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        return len(self._store)
