import os                 # Read REDIS_URL from the environment
import redis              # redis-py (pip install redis)
from dotenv import load_dotenv

load_dotenv()

"""
Redis is only needed when RATE_LIMIT_BACKEND=redis, so every edge instance shares the same counters.
Local run with Docker: `docker run -p 6379:6379 -it redis:latest`

redis-py returns bytes by default (decode_responses=False); the store decodes what it reads itself.
A connection pool reuses TCP connections, which keeps latency flat under many requests.
"""

_client = None


def get_redis() -> redis.Redis:
    """
    Return the shared Redis client built from REDIS_URL (for example redis://redis:6379/0).
    The pool is created on first use so importing this module never opens a socket.
    """
    global _client
    if _client is None:
        url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

        pool = redis.ConnectionPool.from_url(
            url,
            socket_keepalive=True,                # Keep connections alive
            socket_timeout=2.0,                   # Per-operation timeout (seconds)
            socket_connect_timeout=2.0,           # Connect timeout (seconds)
            max_connections=200,                  # Upper bound of concurrent connections
            health_check_interval=30,             # Periodic ping to detect dead connections
            decode_responses=False,
        )
        _client = redis.Redis(connection_pool=pool)
    return _client
