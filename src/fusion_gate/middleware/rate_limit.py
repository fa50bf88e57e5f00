from fastapi import Request
from fastapi.responses import JSONResponse

from fusion_gate.security.rate_limiter import FixedWindowRateLimiter, RateLimitDecision, is_exempt_path
from fusion_gate.utils.get_ip_client import get_client_ip


def _rate_limit_headers(decision: RateLimitDecision) -> dict:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_epoch_seconds()),
    }


async def edge_rate_limit(request: Request, call_next):
    """
    Middleware:
    - Static assets, "/" and the functions namespace go straight through (no headers added).
    - Count the request for (client IP, exact path) in the limiter stored on app.state.
    - Over quota -> 429 {"error", "retryAfter"} + Retry-After, the handler is not called.
    - Under quota -> call the handler, then add X-RateLimit-* to its response.
    """
    path = request.url.path
    if is_exempt_path(path):
        return await call_next(request)

    limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
    client_ip = get_client_ip(request)
    decision = limiter.check(client_ip, path)

    # Read back by the access log
    request.state.rate_limit_remaining = decision.remaining

    if not decision.allowed:
        retry_after = decision.retry_after_seconds(limiter.clock())
        headers = _rate_limit_headers(decision)
        headers["Retry-After"] = str(retry_after)
        return JSONResponse(
            {"error": "Rate limit exceeded", "retryAfter": retry_after},
            status_code=429,
            headers=headers,
        )

    response = await call_next(request)
    response.headers.update(_rate_limit_headers(decision))
    return response
