import os
from dataclasses import dataclass  # Dataclass keeps each group of settings tidy
from dotenv import load_dotenv

load_dotenv()  # Load the .env file from the current directory if there is one


@dataclass(frozen=True)
class RateLimitPolicy:
    """
    Quota of one route bucket:
    - requests: number of requests allowed inside one window
    - window_ms: window length in milliseconds (fixed window, resets entirely)
    """
    requests: int
    window_ms: int


@dataclass(frozen=True)
class TTLConfig:
    """
    TTL (Time To Live) settings of the rate counter store:
    - rl_expire_multiplier: store TTL of a counter relative to its window.
      The limiter decides on reset_time itself, the TTL only garbage-collects cold keys
    - sweep_every: the in-memory store sweeps expired keys once every N writes
    """
    rl_expire_multiplier: int = 2
    sweep_every: int = 1000


TTL = TTLConfig()

# Route buckets, checked IN THIS ORDER by substring on the path (first match wins)
RATE_LIMITS = {
    "signup":  RateLimitPolicy(requests=5,   window_ms=3_600_000),  # 5 per hour
    "login":   RateLimitPolicy(requests=10,  window_ms=900_000),    # 10 per 15 minutes
    "api":     RateLimitPolicy(requests=100, window_ms=60_000),     # 100 per minute
    "default": RateLimitPolicy(requests=60,  window_ms=60_000),     # 60 per minute
}

# Path fragment -> bucket name
BUCKET_BY_FRAGMENT = (
    ("/signup", "signup"),
    ("/login", "login"),
    ("/api/", "api"),
)

# Static assets never count against a quota
EXEMPT_EXTENSIONS = (
    "js", "css", "png", "jpg", "jpeg", "gif", "svg", "ico",
    "woff", "woff2", "ttf", "eot", "html",
)

# Liveness and readiness checks, polled by the orchestrator from one address
HEALTH_CHECK_PATHS = ("/healthz", "/readyz")

# Internal functions namespace, already behind the gate of each function
FUNCTIONS_PREFIX = os.getenv("FUNCTIONS_PREFIX", "/functions/")

# "memory" (one counter map per process) or "redis" (shared between instances)
RATE_LIMIT_BACKEND = os.getenv("RATE_LIMIT_BACKEND", "memory").lower()

# Burst rule of the request gate: more than BURST_THRESHOLD logged events
# for one IP inside the last BURST_WINDOW_SECONDS -> brute_force
BURST_RULE = dict(
    threshold=int(os.getenv("BURST_THRESHOLD", "50")),
    window_seconds=int(os.getenv("BURST_WINDOW_SECONDS", "60")),
)
