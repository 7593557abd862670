"""Fixed-window request counter.

Each key gets a counter that resets wholesale when its window ends, rather
than decaying. A client can therefore land up to 2x the limit across a window
boundary.
"""

import time
from dataclasses import dataclass

from services.cache import Clock

WINDOW_SECONDS = 60.0


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    def __init__(self, clock: Clock = time.monotonic, window_seconds: float = WINDOW_SECONDS):
        self._clock = clock
        self.window_seconds = window_seconds
        self._windows: dict[str, RateLimitWindow] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def window(self, key: str) -> RateLimitWindow | None:
        return self._windows.get(key)

    def count(self, key: str) -> int:
        """Requests counted in the live window for `key`; 0 once it has expired."""
        window = self._windows.get(key)
        if window is None or self._clock() > window.reset_at:
            return 0
        return window.count

    def hit(self, key: str, limit: int) -> bool:
        """Count one request against `key`. False means the window is exhausted."""
        now = self._clock()
        window = self._windows.get(key)

        if window is None or now > window.reset_at:
            self._windows[key] = RateLimitWindow(count=1, reset_at=now + self.window_seconds)
            return True

        if window.count >= limit:
            return False

        window.count += 1
        return True

    def sweep(self) -> int:
        """Drop windows whose reset time has passed. Returns the number removed."""
        now = self._clock()
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)
