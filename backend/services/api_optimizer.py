"""Per-category response cache and rate limiter shielding upstream APIs.

Every proxied route runs through one `APIOptimizer`:

    1. build a cache key from the category + query params
    2. serve a cache hit as-is
    3. on a miss, check the caller's rate-limit budget for the category
    4. call upstream, store the result, return it

Cache hits never consume rate-limit budget. All methods are synchronous and
non-blocking; under a single asyncio loop each call is atomic with respect to
other requests, so no locking is needed. Running this from multiple OS
threads would need a lock around both maps.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from fastapi import Request

from errors import RateLimitExceededError, UnknownCategoryError
from services.cache import Clock, TTLCache
from services.rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 60
UNKNOWN_CLIENT = "unknown"
DEFAULT_MAX_ENTRIES = 1000


@dataclass(frozen=True)
class CategoryPolicy:
    ttl_seconds: float
    limit_per_minute: int

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {self.ttl_seconds}")
        if self.limit_per_minute < 1:
            raise ValueError(f"limit_per_minute must be positive, got {self.limit_per_minute}")


# TTL trades upstream cost against staleness; limits are requests per client per minute.
DEFAULT_POLICIES: dict[str, CategoryPolicy] = {
    "prices": CategoryPolicy(ttl_seconds=30, limit_per_minute=60),
    "news": CategoryPolicy(ttl_seconds=300, limit_per_minute=12),
    "calendar": CategoryPolicy(ttl_seconds=600, limit_per_minute=6),
    "analysis": CategoryPolicy(ttl_seconds=1800, limit_per_minute=20),
    "search": CategoryPolicy(ttl_seconds=3600, limit_per_minute=30),
    "translation": CategoryPolicy(ttl_seconds=3600, limit_per_minute=20),
    "chat": CategoryPolicy(ttl_seconds=60, limit_per_minute=10),
}


def _escape(value: Any) -> str:
    # A value containing "&" or "=" must not be able to spell out another pair.
    return str(value).replace("%", "%25").replace("&", "%26").replace("=", "%3D")


def generate_cache_key(category: str, params: Mapping[str, Any]) -> str:
    """Deterministic key: `category:a=1&b=2`, names sorted, None values dropped."""
    pairs = "&".join(
        f"{name}={_escape(params[name])}" for name in sorted(params) if params[name] is not None
    )
    return f"{category}:{pairs}"


def get_client_id(request: Request, trust_forwarded_for: bool = False) -> str:
    """Identify the caller for rate limiting.

    Falls back to a shared "unknown" bucket when no address is available, so
    every unidentifiable client draws from the same budget.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


class APIOptimizer:
    def __init__(
        self,
        policies: Mapping[str, CategoryPolicy] | None = None,
        clock: Clock = time.monotonic,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        policies = dict(DEFAULT_POLICIES if policies is None else policies)
        if not policies:
            raise ValueError("At least one category policy is required")
        for name, policy in policies.items():
            if not isinstance(policy, CategoryPolicy):
                raise TypeError(f"Policy for {name!r} must be a CategoryPolicy, got {type(policy).__name__}")

        self.policies = policies
        self.max_entries = max_entries
        self._cache = TTLCache(clock=clock)
        self._limiter = FixedWindowRateLimiter(clock=clock)

    def policy(self, category: str) -> CategoryPolicy:
        try:
            return self.policies[category]
        except KeyError:
            raise UnknownCategoryError(category, set(self.policies)) from None

    # -- cache ---------------------------------------------------------------

    def get_cached(self, key: str, category: str) -> Any | None:
        self.policy(category)
        data = self._cache.get(key)
        if data is not None:
            logger.debug("Cache hit for %s", key)
        return data

    def set_cache(self, key: str, data: Any, category: str) -> None:
        ttl = self.policy(category).ttl_seconds
        self._cache.set(key, data, ttl)
        if len(self._cache) > self.max_entries:
            removed = self._cache.sweep()
            logger.info("Cache over %d entries; removed %d expired", self.max_entries, removed)

    # -- rate limiting -------------------------------------------------------

    def check_rate_limit(self, client_id: str, category: str) -> bool:
        limit = self.policy(category).limit_per_minute
        key = f"{client_id}:{category}"
        allowed = self._limiter.hit(key, limit)
        if not allowed:
            window = self._limiter.window(key)
            logger.warning("Rate limit exceeded for %s (%d/%d)", key, window.count, limit)
        return allowed

    def rate_limit_count(self, client_id: str, category: str) -> int:
        return self._limiter.count(f"{client_id}:{category}")

    # -- read-through ----------------------------------------------------------

    async def fetch_through(
        self,
        category: str,
        params: Mapping[str, Any],
        client_id: str,
        fetch: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Serve from cache, else spend rate-limit budget and call upstream.

        Raises RateLimitExceededError when the caller's budget is spent.
        Upstream exceptions propagate and nothing is cached.
        """
        key = generate_cache_key(category, params)
        cached = self.get_cached(key, category)
        if cached is not None:
            return cached

        if not self.check_rate_limit(client_id, category):
            raise RateLimitExceededError(category, retry_after=RETRY_AFTER_SECONDS)

        data = await fetch()
        self.set_cache(key, data, category)
        return data

    # -- housekeeping --------------------------------------------------------

    def cleanup(self) -> tuple[int, int]:
        """Reclaim expired cache entries and rate-limit windows."""
        cache_removed = self._cache.sweep()
        windows_removed = self._limiter.sweep()
        if cache_removed or windows_removed:
            logger.info(
                "Cleaned up %d expired cache entries and %d rate limit windows",
                cache_removed,
                windows_removed,
            )
        return cache_removed, windows_removed

    def get_stats(self) -> dict:
        return {"cache_size": len(self._cache), "rate_limit_entries": len(self._limiter)}


async def run_periodic_cleanup(optimizer: APIOptimizer, interval_seconds: float) -> None:
    """Sweep the optimizer forever, every `interval_seconds`. Cancel to stop."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            optimizer.cleanup()
        except Exception:
            logger.exception("Optimizer cleanup failed")
