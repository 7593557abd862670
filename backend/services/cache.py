"""Simple in-memory TTL cache. No Redis needed.

Note: Each uvicorn worker has its own cache instance. With --workers 2,
upstream data may be fetched twice (once per worker). This is acceptable at
the traffic implied by the per-minute rate limits.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    key: str
    data: Any
    stored_at: float
    expires_at: float


class TTLCache:
    def __init__(self, clock: Clock = time.monotonic):
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._store[key]
            return None
        return entry.data

    def set(self, key: str, value: Any, ttl_seconds: float) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(key=key, data=value, stored_at=now, expires_at=now + ttl_seconds)
        self._store[key] = entry
        return entry

    def sweep(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._store.items() if now > entry.expires_at]
        for key in expired:
            del self._store[key]
        return len(expired)
