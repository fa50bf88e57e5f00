from fastapi import Request
from typing import Mapping, Optional

# Headers carrying the original client address, in priority order
CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "client-ip")


def client_ip_from_headers(headers: Mapping[str, str], fallback: Optional[str] = None) -> str:
    """
    Return the client address of a request from its headers:
    - X-Forwarded-For: first element ("client, proxy1, proxy2"), the original client behind proxies
    - X-Real-IP, then Client-IP
    - otherwise `fallback` (the socket peer), otherwise "unknown"
    """
    for name in CLIENT_IP_HEADERS:
        value = headers.get(name)
        if value:
            # Only X-Forwarded-For carries a list, splitting the others is harmless
            first = value.split(",")[0].strip()
            if first:
                return first

    return fallback or "unknown"


def get_client_ip(request: Request) -> str:
    """
    Client address of a FastAPI request (forwarding headers first, socket peer second).
    """
    peer = request.client.host if request.client else None
    return client_ip_from_headers(request.headers, fallback=peer)
