import json, time, uuid
from typing import Dict

from fastapi import Request
from fastapi.responses import Response
from starlette.concurrency import iterate_in_threadpool

# Access logger configured in log/logging_config.py
from fusion_gate.log.logging_config import logger
from fusion_gate.utils.get_ip_client import get_client_ip

# Low-value paths (less noise)
EXCLUDED_PATHS = {"/redoc", "/docs", "/openapi.json"}

# Keys masked when logging query params / body
SENSITIVE_KEYS = {"password", "token", "authorization", "apikey", "secret"}

# Upper bound of request/response data written to the log
MAX_LOG_BYTES = 64 * 1024  # 64KB


def sanitize_dict(d: Dict) -> Dict:
    """
    Mask sensitive fields of a dict, nested dicts and lists included.
    """
    out = {}
    for k, v in d.items():
        if str(k).lower() in SENSITIVE_KEYS:
            out[k] = "***"
        elif isinstance(v, dict):
            out[k] = sanitize_dict(v)
        elif isinstance(v, list):
            out[k] = [sanitize_dict(i) if isinstance(i, dict) else i for i in v]
        else:
            out[k] = v
    return out


def _body_for_log(raw_body: bytes, content_type: str) -> str:
    if not raw_body or len(raw_body) > MAX_LOG_BYTES or "application/json" not in content_type:
        return "-"
    try:
        parsed = json.loads(raw_body)
    except RecursionError:
        # Nested deeper than the decoder accepts
        return "-"
    except ValueError:
        # Not JSON after all: log the decoded text
        return raw_body.decode(errors="ignore")
    try:
        if isinstance(parsed, dict):
            parsed = sanitize_dict(parsed)
        return json.dumps(parsed, ensure_ascii=False)
    except RecursionError:
        return "-"


async def log_requests(request: Request, call_next):
    """
    Middleware writing one access-log line per request/response.
    - Start the timer.
    - Collect client IP, method, path, sanitized query params, user-agent, correlation-id.
    - Read a small JSON request body to log it (sensitive keys masked).
    - Call the real handler, log the exception too if it raises.
    - Read the response body to log a preview (<= MAX_LOG_BYTES), then give the FULL body back to the client.
    """
    start = time.perf_counter()

    method = request.method
    path = request.url.path
    ua = request.headers.get("user-agent", "-")
    # Correlation-ID: from the header when present, otherwise generated
    cid = request.headers.get("x-request-id") or str(uuid.uuid4())
    client_ip = get_client_ip(request)

    params = sanitize_dict(dict(request.query_params))

    # Must re-attach the body for downstream after reading it, otherwise the handler sees an empty body
    raw_body = await request.body()
    req_body_for_log = _body_for_log(raw_body, request.headers.get("content-type", ""))

    async def receive():
        return {"type": "http.request", "body": raw_body, "more_body": False}

    request = Request(request.scope, receive)

    def _extra(status, result, duration_ms):
        return {
            "ip": client_ip,
            "api_name": path,
            "params": json.dumps(params, ensure_ascii=False),
            "result": result,
            "method": method,
            "status": status,
            "duration_ms": f"{duration_ms:.2f}",
            "user_agent": ua,
            "correlation_id": cid,
            "request_body": req_body_for_log,
            "rate_limit_remaining": getattr(request.state, "rate_limit_remaining", "-"),
        }

    if path in EXCLUDED_PATHS:
        response = await call_next(request)
        logger.info("", extra=_extra(response.status_code, "excluded_path", (time.perf_counter() - start) * 1000))
        return response

    try:
        response = await call_next(request)
    except Exception as exc:
        logger.exception("", extra=_extra(500, f"Exception: {exc!r}", (time.perf_counter() - start) * 1000))
        # Re-raise so FastAPI's error pipeline still runs
        raise

    # Read the FULL response body, then give it back as a one-chunk iterator
    content_type = response.headers.get("Content-Type", "")
    body = b""
    async for chunk in response.body_iterator:
        body += chunk
    response.body_iterator = iterate_in_threadpool(iter([body]))

    if "application/json" in content_type:
        try:
            log_result = json.dumps(json.loads(body[:MAX_LOG_BYTES] or b"{}"), ensure_ascii=False)
            if len(body) > MAX_LOG_BYTES:
                log_result += f' ... <truncated {len(body)-MAX_LOG_BYTES} bytes>'
        except (ValueError, RecursionError):
            log_result = body[:MAX_LOG_BYTES].decode(errors="ignore")

    elif "text" in content_type:
        log_result = body[:MAX_LOG_BYTES].decode(errors="ignore")
        if len(body) > MAX_LOG_BYTES:
            log_result += f' ... <truncated {len(body)-MAX_LOG_BYTES} bytes>'

    # Binary (xlsx export...): file name + size
    else:
        file_name = response.headers.get("content-disposition", "")
        log_result = f"Content: {file_name} ; Binary data of length: {len(body)}"

    logger.info("", extra=_extra(response.status_code, log_result, (time.perf_counter() - start) * 1000))

    return Response(
        content=body,
        status_code=response.status_code,
        headers=dict(response.headers),
        media_type=content_type,
    )
