"""
Request gate of the protected functions.

Checks run once per request, in a fixed order, and the first hit is terminal:

1. SQL injection in any string of the body     -> critical
2. XSS                                         -> high
3. Path traversal                              -> high
4. Command injection                           -> critical
5. Hacking-tool User-Agent                     -> high (suspicious_activity)
6. More than 50 logged events for the IP in 60s -> high (brute_force)

Every blocking branch appends exactly one security event before returning.
The audit write is fail-open (a logging outage is only written to the system log)
while the request itself is fail-closed (the block stands either way); GateResult keeps
the two apart.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm.session import Session

from fusion_gate.db.database import get_db
from fusion_gate.log.system_log import system_logger
from fusion_gate.schemas.schemas import EventType, SecurityEventCreate, ThreatLevel
from fusion_gate.security.burst_detector import BurstDetector
from fusion_gate.security.event_logger import AuditOutcome, log_security_event
from fusion_gate.security.patterns import ThreatCategory, is_suspicious_user_agent, matches
from fusion_gate.security.scanner import parse_body, scan
from fusion_gate.utils.get_ip_client import client_ip_from_headers

BLOCKED_ERROR = "Request blocked for security reasons"


@dataclass(frozen=True)
class SecurityDecision:
    blocked: bool
    reason: Optional[str] = None
    threat_level: Optional[str] = None
    event_type: Optional[str] = None

    def as_dict(self) -> dict:
        """The {blocked, reason?, threatLevel?} shape returned to callers."""
        if not self.blocked:
            return {"blocked": False}
        return {"blocked": True, "reason": self.reason, "threatLevel": self.threat_level}


@dataclass(frozen=True)
class GateResult:
    """
    decision: what happens to the request
    audit: outcome of the security event write (None when nothing had to be logged)
    """
    decision: SecurityDecision
    audit: Optional[AuditOutcome] = None

    @property
    def blocked(self) -> bool:
        return self.decision.blocked


@dataclass(frozen=True)
class ContentRule:
    """One body check: which patterns, how the event is labelled, what the caller is told."""
    category: ThreatCategory
    event_type: EventType
    threat_level: ThreatLevel
    field_reason: str       # stored reason, formatted with the offending field
    public_reason: str      # reason returned to the caller


# Checked in this order, the first hit wins
CONTENT_RULES = (
    ContentRule(ThreatCategory.SQL_INJECTION, EventType.SQL_INJECTION, ThreatLevel.CRITICAL,
                "SQL Injection detected in field: {key}", "SQL Injection attempt detected"),
    ContentRule(ThreatCategory.XSS, EventType.XSS_ATTEMPT, ThreatLevel.HIGH,
                "XSS attempt detected in field: {key}", "XSS attempt detected"),
    ContentRule(ThreatCategory.PATH_TRAVERSAL, EventType.PATH_TRAVERSAL, ThreatLevel.HIGH,
                "Path traversal detected in field: {key}", "Path traversal attempt detected"),
    ContentRule(ThreatCategory.COMMAND_INJECTION, EventType.COMMAND_INJECTION, ThreatLevel.CRITICAL,
                "Command injection detected in field: {key}", "Command injection attempt detected"),
)


class RequestGate:
    """
    Runs the ordered checks of one request. The burst detector is injectable for tests.
    """

    def __init__(self, burst_detector: Optional[BurstDetector] = None, rules=CONTENT_RULES):
        self.burst_detector = burst_detector or BurstDetector()
        self.rules = rules

    def inspect(self, db: Session, body: Optional[Union[str, bytes]], headers: Mapping[str, str],
                method: str, endpoint: str, peer: Optional[str] = None) -> GateResult:
        """
        Synchronous core of the gate
        - `body`: raw request body (parsed here, wrapped as {"raw": ...} when it is not JSON)
        - `headers`: request headers (X-Forwarded-For / X-Real-IP / Client-IP, User-Agent)
        - `endpoint`: name of the protected function, stored with the event
        """
        headers = {k.lower(): v for k, v in headers.items()}
        ip_address = client_ip_from_headers(headers, fallback=peer)
        user_agent = headers.get("user-agent") or "unknown"
        request_body = parse_body(body)

        def _block(event_type: EventType, threat_level: ThreatLevel, stored_reason: str,
                   public_reason: str, metadata: dict) -> GateResult:
            decision = SecurityDecision(blocked=True, reason=public_reason,
                                        threat_level=threat_level.value, event_type=event_type.value)
            system_logger.warning("Blocked %s from %s on %s: %s", event_type.value, ip_address, endpoint, stored_reason)
            audit = log_security_event(db, SecurityEventCreate(
                event_type=event_type,
                ip_address=ip_address,
                user_agent=user_agent,
                endpoint=endpoint,
                request_method=method,
                request_body=request_body,
                threat_level=threat_level,
                reason=stored_reason,
                blocked=True,
                metadata=metadata,
            ))
            return GateResult(decision=decision, audit=audit)

        # (1-4) Body signatures, nothing to scan for an empty body
        if request_body is not None:
            for rule in self.rules:
                finding = scan(request_body, lambda value, c=rule.category: matches(c, value))
                if finding:
                    return _block(rule.event_type, rule.threat_level,
                                  rule.field_reason.format(key=finding.key), rule.public_reason,
                                  {"field": finding.key, "detected_pattern": finding.value})

        # (5) Known hacking tools, whatever the body says
        if is_suspicious_user_agent(user_agent):
            return _block(EventType.SUSPICIOUS_ACTIVITY, ThreatLevel.HIGH,
                          "Suspicious user agent detected (hacking tool)", "Suspicious user agent detected",
                          {"user_agent": user_agent})

        # (6) Sustained abuse from the same IP, read from the event log
        burst = self.burst_detector.check(db, ip_address)
        if burst.exceeded:
            return _block(EventType.BRUTE_FORCE, ThreatLevel.HIGH,
                          "Rate limit exceeded - Potential brute force attack", "Rate limit exceeded",
                          {"requests_per_minute": burst.count})

        return GateResult(decision=SecurityDecision(blocked=False))

    async def check(self, request: Request, endpoint: str, db: Session) -> GateResult:
        """Read the FastAPI request and run the checks."""
        body = await request.body()
        peer = request.client.host if request.client else None
        return self.inspect(db, body, request.headers, request.method, endpoint, peer=peer)


_default_gate = RequestGate()


async def check_security(request: Request, endpoint: str, db: Session, gate: Optional[RequestGate] = None) -> GateResult:
    """
    Gate entry used by the protected functions: returns the decision and its audit outcome.
    A blocked result must be answered with HTTP 403 (see blocked_response).
    """
    return await (gate or _default_gate).check(request, endpoint, db)


def blocked_response(decision: SecurityDecision) -> JSONResponse:
    """HTTP 403 answered to a blocked request."""
    return JSONResponse(status_code=403, content={"error": BLOCKED_ERROR, "reason": decision.reason})


class RequestBlocked(Exception):
    """Raised by the security_gate dependency; turned into a 403 by request_blocked_handler."""

    def __init__(self, result: GateResult):
        super().__init__(result.decision.reason)
        self.result = result


async def request_blocked_handler(request: Request, exc: RequestBlocked) -> JSONResponse:
    return blocked_response(exc.result.decision)


def get_request_gate() -> RequestGate:
    """Dependency returning the gate; tests override it to inject a different burst detector."""
    return _default_gate


def security_gate(endpoint: str):
    """
    Dependency factory protecting one endpoint:

    ```python
    @router.post("/signup")
    async def signup(request: Request, _: GateResult = Depends(security_gate("signup-user"))):
        form = SignupRequest.model_validate_json(await request.body())
        ...
    ```

    The route must read its body itself: a pydantic body parameter would be validated
    (422) before the gate sees the raw body.
    """
    async def _dependency(request: Request, db: Session = Depends(get_db),
                          gate: RequestGate = Depends(get_request_gate)) -> Any:
        result = await check_security(request, endpoint, db, gate=gate)
        if result.blocked:
            raise RequestBlocked(result)
        return result

    return _dependency
