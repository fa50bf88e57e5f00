import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from fusion_gate.log.system_log import system_logger
from fusion_gate.security.config import TTL
from fusion_gate.security.keyspace import k_rate_limit

"""
Storage of the fixed-window counters.

The limiter only talks to the RateLimitStore interface (hit, plus get / set / delete with a TTL),
so the per-process map can be swapped for a shared cache without touching the call sites:
- InMemoryRateLimitStore: one map per process. Every edge instance counts on its own (best effort)
- RedisRateLimitStore: one hash per counter in Redis, shared by every instance.
  hit() runs the whole fixed-window step in one Lua script, so instances never race on a counter
"""


def now_ms() -> int:
    """Current epoch time in milliseconds (default clock of the stores and the limiter)."""
    return int(time.time() * 1000)


@dataclass
class RateLimitEntry:
    """
    Counter of one client+path inside its current window:
    - count: requests seen in the window
    - reset_time: epoch milliseconds at which the window ends
    """
    count: int
    reset_time: int


def entry_ttl_ms(reset_time: int, window_ms: int, now: int) -> int:
    """Keep a counter a little longer than its window; decisions rely on reset_time, not on expiry."""
    return (reset_time - now) + window_ms * (TTL.rl_expire_multiplier - 1)


class RateLimitStore:
    """Key/value store of RateLimitEntry with a TTL in milliseconds."""

    def hit(self, key: str, now: int, window_ms: int, limit: int) -> Tuple[bool, RateLimitEntry]:
        """
        Count one request on `key` and return (allowed, entry after the request):
        - no entry, or now > reset_time -> fresh window, count = 1, allowed
        - count >= limit -> denied, entry unchanged
        - otherwise -> count + 1, allowed
        This default is a read-modify-write over get/set; callers serialize it within the process.
        """
        entry = self.get(key)

        if entry is None or now > entry.reset_time:
            entry = RateLimitEntry(count=1, reset_time=now + window_ms)
        elif entry.count >= limit:
            return False, entry
        else:
            entry = RateLimitEntry(count=entry.count + 1, reset_time=entry.reset_time)

        self.set(key, entry, entry_ttl_ms(entry.reset_time, window_ms, now))
        return True, entry

    def get(self, key: str) -> Optional[RateLimitEntry]:
        raise NotImplementedError

    def set(self, key: str, entry: RateLimitEntry, ttl_ms: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryRateLimitStore(RateLimitStore):
    """
    Process-local store. Keys expire lazily on read once their TTL is over,
    and a sweep drops cold keys every TTL.sweep_every writes so the map cannot grow forever.
    """

    def __init__(self, clock: Callable[[], int] = now_ms, sweep_every: int = TTL.sweep_every):
        self._clock = clock
        self._sweep_every = sweep_every
        self._items: Dict[str, Tuple[RateLimitEntry, int]] = {}   # key -> (entry, expires_at_ms)
        self._writes = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[RateLimitEntry]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            entry, expires_at = item
            if self._clock() > expires_at:
                del self._items[key]
                return None
            return entry

    def set(self, key: str, entry: RateLimitEntry, ttl_ms: int) -> None:
        with self._lock:
            self._items[key] = (entry, self._clock() + ttl_ms)
            self._writes += 1
            if self._writes % self._sweep_every == 0:
                self._sweep()

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)

    def _sweep(self) -> None:
        # Caller holds the lock
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._items.items() if now > expires_at]
        for k in expired:
            del self._items[k]


# Fixed window in one round trip, atomic for every instance sharing the Redis server
FIXED_WINDOW_LUA = r"""
-- KEYS[1] : counter hash, e.g. rl:fw:203.0.113.10:/api/signup
-- ARGV[1] : now (epoch ms, clock of the app so every decision uses the same time base)
-- ARGV[2] : window_ms
-- ARGV[3] : limit (requests allowed in one window)
-- ARGV[4] : extra TTL kept after reset_time (ms)

local key     = KEYS[1]
local now     = tonumber(ARGV[1])
local window  = tonumber(ARGV[2])
local limit   = tonumber(ARGV[3])
local extra   = tonumber(ARGV[4])

local current = redis.call('HMGET', key, 'count', 'reset_time')
local count   = tonumber(current[1])
local reset   = tonumber(current[2])

if count == nil or reset == nil or now > reset then
  -- Missing, unreadable or expired window: open a fresh one
  count = 1
  reset = now + window
elseif count >= limit then
  return {0, count, reset}
else
  count = count + 1
end

redis.call('HSET', key, 'count', string.format('%d', count), 'reset_time', string.format('%d', reset))
redis.call('PEXPIRE', key, string.format('%d', (reset - now) + extra))
return {1, count, reset}
"""


class RedisRateLimitStore(RateLimitStore):
    """
    Redis store: HSET rl:fw:<client>:<path> count <n> reset_time <ms> + PEXPIRE <ttl>.

    Redis down -> fail-open: hits are allowed as the first request of a fresh window,
    reads behave like a cache miss and writes are dropped. After an error Redis is skipped
    for `cooldown_seconds` so no request waits for a socket timeout, and warnings are
    throttled to one per second.
    """

    def __init__(self, client, cooldown_seconds: float = 5.0, log_every_seconds: float = 1.0):
        self._redis = client
        # Compiled once, sent with EVALSHA (EVAL again if the server lost its script cache)
        self._hit_script = client.register_script(FIXED_WINDOW_LUA)
        self._cooldown_seconds = cooldown_seconds
        self._log_every_seconds = log_every_seconds
        self._skip_until_ts = 0.0        # Circuit breaker: skip Redis until this timestamp
        self._last_log_ts = 0.0          # Throttle of the warning log

    # ===== Circuit breaker =====

    def _should_skip(self) -> bool:
        return time.time() < self._skip_until_ts

    def _mark_down(self, ex: Exception, op: str) -> None:
        now = time.time()
        self._skip_until_ts = now + self._cooldown_seconds
        if now - self._last_log_ts >= self._log_every_seconds:
            self._last_log_ts = now
            system_logger.warning("Rate limit store Redis error at %s (skip %.1fs): %s", op, self._cooldown_seconds, ex)

    # ===== Store interface =====

    def hit(self, key: str, now: int, window_ms: int, limit: int) -> Tuple[bool, RateLimitEntry]:
        fresh = RateLimitEntry(count=1, reset_time=now + window_ms)
        if self._should_skip():
            return True, fresh
        try:
            allowed, count, reset_time = self._hit_script(
                keys=[k_rate_limit(key)],
                args=[now, window_ms, limit, window_ms * (TTL.rl_expire_multiplier - 1)],
            )
        except Exception as ex:
            self._mark_down(ex, "EVALSHA")
            return True, fresh
        return bool(int(allowed)), RateLimitEntry(count=int(count), reset_time=int(reset_time))

    def get(self, key: str) -> Optional[RateLimitEntry]:
        if self._should_skip():
            return None
        try:
            count, reset_time = self._redis.hmget(k_rate_limit(key), "count", "reset_time")
        except Exception as ex:
            self._mark_down(ex, "HMGET")
            return None

        if count is None or reset_time is None:
            return None

        try:
            return RateLimitEntry(count=int(count), reset_time=int(reset_time))
        except ValueError as ex:
            # Corrupted value -> treat as a miss, the next hit overwrites it
            system_logger.warning("Rate limit entry decode failed for key=%s: %s", key, ex)
            return None

    def set(self, key: str, entry: RateLimitEntry, ttl_ms: int) -> None:
        if self._should_skip():
            return
        redis_key = k_rate_limit(key)
        try:
            self._redis.hset(redis_key, mapping={"count": entry.count, "reset_time": entry.reset_time})
            self._redis.pexpire(redis_key, max(1, int(ttl_ms)))
        except Exception as ex:
            self._mark_down(ex, "HSET")

    def delete(self, key: str) -> None:
        if self._should_skip():
            return
        try:
            self._redis.delete(k_rate_limit(key))
        except Exception as ex:
            self._mark_down(ex, "DEL")

    def ping(self) -> bool:
        """Readiness check; unlike the store operations it raises when Redis is down."""
        return bool(self._redis.ping())
