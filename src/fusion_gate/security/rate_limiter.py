import math
import re
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from fusion_gate.log.system_log import system_logger
from fusion_gate.security.config import (
    BUCKET_BY_FRAGMENT, EXEMPT_EXTENSIONS, FUNCTIONS_PREFIX,
    HEALTH_CHECK_PATHS, RATE_LIMIT_BACKEND, RATE_LIMITS, RateLimitPolicy,
)
from fusion_gate.security.rate_limit_store import (
    InMemoryRateLimitStore, RateLimitStore, RedisRateLimitStore, now_ms,
)
from fusion_gate.security.redis_client import get_redis

"""
Edge rate limiter (fixed window)
- Every client address + EXACT path owns one counter, so two signup-like paths
  get independent counters even though they share the signup policy.
- The policy (quota + window) comes from the path bucket: /signup, /login, /api/, else default.
- The first request opens a window of policy.window_ms; the counter resets entirely
  once now > reset_time (no sliding).
- Counters live in a RateLimitStore: per process by default, Redis when RATE_LIMIT_BACKEND=redis.
"""

_EXEMPT_RE = re.compile(r"\.(" + "|".join(EXEMPT_EXTENSIONS) + r")$")


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Outcome of one check:
    - allowed: the request may go through
    - limit: quota of the bucket (X-RateLimit-Limit)
    - remaining: requests left in the window (X-RateLimit-Remaining)
    - reset_time: end of the window, epoch milliseconds
    """
    allowed: bool
    limit: int
    remaining: int
    reset_time: int

    def retry_after_seconds(self, now: int) -> int:
        """Seconds until the window resets, rounded up (Retry-After)."""
        return max(0, math.ceil((self.reset_time - now) / 1000))

    def reset_epoch_seconds(self) -> int:
        """End of the window in epoch seconds (X-RateLimit-Reset)."""
        return self.reset_time // 1000


def classify_path(path: str) -> Tuple[str, RateLimitPolicy]:
    """
    Return (bucket name, policy) of a path. Substring checks run in the listed order, first match wins.
    """
    for fragment, bucket in BUCKET_BY_FRAGMENT:
        if fragment in path:
            return bucket, RATE_LIMITS[bucket]
    return "default", RATE_LIMITS["default"]


def rate_limit_key(client_address: str, path: str) -> str:
    """Counter key: client address and exact path, e.g. 203.0.113.10:/api/foo"""
    return f"{client_address}:{path}"


def is_exempt_path(path: str, functions_prefix: str = FUNCTIONS_PREFIX) -> bool:
    """
    Paths that bypass rate limiting entirely:
    - static assets (by extension)
    - the root path and the health checks
    - the internal functions namespace
    """
    return (bool(_EXEMPT_RE.search(path)) or path == "/" or path in HEALTH_CHECK_PATHS
            or path.startswith(functions_prefix))


class FixedWindowRateLimiter:
    """
    Fixed-window limiter over a RateLimitStore.
    `clock` returns epoch milliseconds; tests inject a fake one.
    """

    def __init__(self, store: RateLimitStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock
        # Serializes the store hit inside this process; the Redis store is atomic across instances on its own
        self._lock = threading.Lock()

    def check(self, client_address: str, path: str) -> RateLimitDecision:
        """
        Count one request of `client_address` on `path` and decide:
        - no entry, or now > reset_time -> fresh window, count = 1, allowed
        - count >= quota -> denied, remaining 0, reset_time unchanged
        - otherwise -> count + 1, allowed
        """
        _, policy = classify_path(path)
        key = rate_limit_key(client_address, path)

        with self._lock:
            now = self.clock()
            allowed, entry = self.store.hit(key, now, policy.window_ms, policy.requests)

        remaining = policy.requests - entry.count if allowed else 0
        return RateLimitDecision(allowed, policy.requests, remaining, entry.reset_time)


def build_rate_limiter(backend: Optional[str] = None) -> FixedWindowRateLimiter:
    """
    Build the limiter for the configured backend ("memory" or "redis").
    """
    backend = (backend or RATE_LIMIT_BACKEND).lower()
    if backend == "redis":
        system_logger.info("Rate limiter uses the Redis store")
        return FixedWindowRateLimiter(RedisRateLimitStore(get_redis()))

    if backend != "memory":
        system_logger.warning("Unknown RATE_LIMIT_BACKEND=%s, falling back to the in-memory store", backend)
    return FixedWindowRateLimiter(InMemoryRateLimitStore())
