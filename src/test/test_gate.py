import json
from datetime import datetime, timedelta, timezone

import pytest

from fusion_gate.db import db_security_event
from fusion_gate.db.models import DbSecurityEvent
from fusion_gate.schemas.schemas import EventType, SecurityEventCreate, ThreatLevel
from fusion_gate.security.burst_detector import BurstDetector, count_recent_events
from fusion_gate.security.gate import RequestGate, SecurityDecision

BROWSER = {"User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"}


@pytest.fixture
def gate():
    return RequestGate()


def _events(db):
    return db.query(DbSecurityEvent).order_by(DbSecurityEvent.id).all()


def _inspect(gate, db, body, headers=BROWSER, endpoint="signup-user"):
    raw = body if isinstance(body, (str, bytes)) or body is None else json.dumps(body)
    return gate.inspect(db, raw, headers, "POST", endpoint)


def _seed_events(db, ip, n):
    for _ in range(n):
        result = db_security_event.create_security_event(db, SecurityEventCreate(
            event_type=EventType.SUSPICIOUS_ACTIVITY, ip_address=ip, endpoint="seed",
            threat_level=ThreatLevel.LOW, reason="seed",
        ))
        assert result["success"], result["message"]


def test_sql_injection_in_email(gate, db_session):
    result = _inspect(gate, db_session, {"email": "a' OR '1'='1", "fullName": "Mallory"})

    assert result.decision.as_dict() == {
        "blocked": True,
        "reason": "SQL Injection attempt detected",
        "threatLevel": "critical",
    }
    assert result.audit.persisted is True

    events = _events(db_session)
    assert len(events) == 1
    event = events[0]
    assert event.id == result.audit.event_id
    assert event.event_type == "sql_injection"
    assert event.threat_level == "critical"
    assert event.blocked is True
    assert event.reason == "SQL Injection detected in field: email"
    assert event.ip_address == "203.0.113.7"
    assert event.endpoint == "signup-user"
    assert event.request_method == "POST"
    assert event.response_status == 403
    assert event.request_body == {"email": "a' OR '1'='1", "fullName": "Mallory"}
    assert event.event_metadata == {"field": "email", "detected_pattern": "a' OR '1'='1"}


def test_clean_request_passes_without_event(gate, db_session):
    result = _inspect(gate, db_session, {"email": "alice@example.com", "fullName": "Alice Smith", "password": "supersecret1"})
    assert result.blocked is False
    assert result.audit is None
    assert result.decision.as_dict() == {"blocked": False}
    assert _events(db_session) == []


@pytest.mark.parametrize("body, event_type, level, reason", [
    ({"bio": "<script>alert(1)</script>"}, "xss_attempt", "high", "XSS attempt detected"),
    ({"file": "../../etc/passwd"}, "path_traversal", "high", "Path traversal attempt detected"),
    ({"name": "x; cat /etc/passwd"}, "command_injection", "critical", "Command injection attempt detected"),
])
def test_each_category(gate, db_session, body, event_type, level, reason):
    result = _inspect(gate, db_session, body)
    assert result.decision == SecurityDecision(blocked=True, reason=reason, threat_level=level, event_type=event_type)
    [event] = _events(db_session)
    assert event.event_type == event_type
    assert event.reason.endswith(f"in field: {next(iter(body))}")


def test_sql_wins_over_xss(gate, db_session):
    result = _inspect(gate, db_session, {"comment": "<script>alert('x')</script>"})
    assert result.decision.event_type == "sql_injection"
    assert [e.event_type for e in _events(db_session)] == ["sql_injection"]


def test_category_order_beats_field_order(gate, db_session):
    # XSS in the first field, path traversal in the second: XSS is checked first
    result = _inspect(gate, db_session, {"a": "../../secret", "b": "<iframe src=x></iframe>"})
    assert result.decision.event_type == "xss_attempt"
    assert _events(db_session)[0].reason == "XSS attempt detected in field: b"


def test_body_threat_beats_user_agent(gate, db_session):
    headers = dict(BROWSER, **{"User-Agent": "sqlmap/1.5"})
    result = _inspect(gate, db_session, {"cmd": "$(whoami)"}, headers=headers)
    assert result.decision.event_type == "command_injection"
    assert len(_events(db_session)) == 1


def test_suspicious_user_agent_with_clean_body(gate, db_session):
    headers = {"User-Agent": "sqlmap/1.5", "X-Real-IP": "198.51.100.4"}
    result = _inspect(gate, db_session, {"email": "alice@example.com"}, headers=headers)

    assert result.decision.as_dict() == {"blocked": True, "reason": "Suspicious user agent detected", "threatLevel": "high"}
    [event] = _events(db_session)
    assert event.event_type == "suspicious_activity"
    assert event.reason == "Suspicious user agent detected (hacking tool)"
    assert event.event_metadata == {"user_agent": "sqlmap/1.5"}
    assert event.ip_address == "198.51.100.4"


def test_empty_body_skips_content_checks(gate, db_session):
    assert _inspect(gate, db_session, b"").blocked is False
    assert _inspect(gate, db_session, b"", headers={"User-Agent": "Nikto"}).decision.event_type == "suspicious_activity"


def test_invalid_json_is_scanned_as_raw(gate, db_session):
    result = _inspect(gate, db_session, "email=x' OR 1=1")
    assert result.decision.event_type == "sql_injection"
    [event] = _events(db_session)
    assert event.request_body == {"raw": "email=x' OR 1=1"}
    assert event.reason == "SQL Injection detected in field: raw"


def test_too_deeply_nested_json_is_scanned_as_raw(gate, db_session):
    body = b"[" * 100_000 + b"x' OR 1=1"
    result = _inspect(gate, db_session, body)
    assert result.decision.event_type == "sql_injection"
    [event] = _events(db_session)
    assert event.reason == "SQL Injection detected in field: raw"


def test_too_deeply_nested_clean_body_passes(gate, db_session):
    assert _inspect(gate, db_session, b"[" * 100_000).blocked is False
    assert _events(db_session) == []


def test_bare_string_body(gate, db_session):
    result = _inspect(gate, db_session, json.dumps("1' OR '1'='1"))
    assert result.blocked is True
    assert _events(db_session)[0].reason == "SQL Injection detected in field: $"


def test_missing_headers_default_to_unknown(gate, db_session):
    _inspect(gate, db_session, {"q": "1=1"}, headers={})
    [event] = _events(db_session)
    assert event.ip_address == "unknown"
    assert event.user_agent == "unknown"


def test_socket_peer_used_without_forwarding_headers(gate, db_session):
    gate.inspect(db_session, b'{"q": "1=1"}', {}, "POST", "signup-user", peer="192.0.2.50")
    assert _events(db_session)[0].ip_address == "192.0.2.50"


# ===== Burst =====

def test_burst_over_threshold_blocks(gate, db_session):
    _seed_events(db_session, "203.0.113.7", 51)

    result = _inspect(gate, db_session, {"email": "alice@example.com"})
    assert result.decision.as_dict() == {"blocked": True, "reason": "Rate limit exceeded", "threatLevel": "high"}

    event = _events(db_session)[-1]
    assert event.event_type == "brute_force"
    assert event.reason == "Rate limit exceeded - Potential brute force attack"
    assert event.event_metadata == {"requests_per_minute": 51}


def test_burst_at_threshold_passes(gate, db_session):
    _seed_events(db_session, "203.0.113.7", 50)
    assert _inspect(gate, db_session, {"email": "alice@example.com"}).blocked is False


def test_burst_counts_only_the_same_ip(gate, db_session):
    _seed_events(db_session, "198.51.100.1", 60)
    assert _inspect(gate, db_session, {"email": "alice@example.com"}).blocked is False


def test_burst_ignores_events_outside_window(db_session):
    _seed_events(db_session, "203.0.113.7", 51)
    later = datetime.now(timezone.utc) + timedelta(seconds=61)
    gate = RequestGate(burst_detector=BurstDetector(clock=lambda: later))
    assert _inspect(gate, db_session, {"email": "alice@example.com"}).blocked is False


def test_count_recent_events(db_session):
    _seed_events(db_session, "203.0.113.7", 3)
    assert count_recent_events(db_session, "203.0.113.7") == 3
    assert count_recent_events(db_session, "203.0.113.8") == 0


def test_custom_burst_threshold(db_session):
    _seed_events(db_session, "203.0.113.7", 3)
    gate = RequestGate(burst_detector=BurstDetector(threshold=2))
    assert _inspect(gate, db_session, {"email": "alice@example.com"}).decision.event_type == "brute_force"


# ===== Audit failure =====

def test_logging_failure_still_blocks(gate, broken_db_session):
    result = _inspect(gate, broken_db_session, {"email": "a' OR '1'='1"})
    assert result.decision.as_dict() == {"blocked": True, "reason": "SQL Injection attempt detected", "threatLevel": "critical"}
    assert result.audit.persisted is False
    assert result.audit.event_id is None
    assert result.audit.error


def test_clean_request_passes_when_event_log_is_down(gate, broken_db_session):
    assert _inspect(gate, broken_db_session, {"email": "alice@example.com"}).blocked is False
