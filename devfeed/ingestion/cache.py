"""
Time-bounded in-memory cache.

One instance backs each source client's request cache and another backs the
aggregator's result cache. Entries become invalid once they reach the TTL;
they are removed lazily on lookup or by `clear_expired()`, which only ever
deletes entries and so can interleave safely with reads and writes.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload and the clock reading at which it was stored."""

    key: str
    payload: Any
    created_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at < ttl_seconds


class ResponseCache:
    """
    TTL cache keyed by request signature.

    Args:
        ttl_seconds: Lifetime of an entry; 0 disables caching entirely.
        clock: Source of "now" in seconds, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        """Return the fresh entry for `key`, dropping it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_fresh(self._clock(), self.ttl_seconds):
            return entry

        self._entries.pop(key, None)
        return None

    def set(self, key: str, payload: Any) -> CacheEntry | None:
        """Store `payload` under `key`. Returns None when caching is disabled."""
        if self.ttl_seconds <= 0:
            return None
        entry = CacheEntry(key=key, payload=payload, created_at=self._clock())
        self._entries[key] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def clear_expired(self) -> int:
        """Delete every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if not entry.is_fresh(now, self.ttl_seconds)
        ]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
