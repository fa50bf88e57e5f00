import pytest

from fusion_gate.db.database import get_db
from fusion_gate.db.models import DbSecurityEvent

URL = "/functions/log-security-event"
REPORT = {"event_type": "xss_attempt", "endpoint": "contact-form", "threat_level": "high", "reason": "Script tag in message"}


def test_report_is_logged(client, db_session):
    response = client.post(URL, json=REPORT, headers={"X-Forwarded-For": "203.0.113.20", "User-Agent": "Mozilla/5.0"})

    assert response.status_code == 200
    event = db_session.query(DbSecurityEvent).one()
    assert response.json() == {"success": True, "event_id": event.id, "message": "Security event logged successfully"}
    assert event.ip_address == "203.0.113.20"
    assert event.user_agent == "Mozilla/5.0"
    assert event.request_method == "POST"
    assert event.response_status == 403
    assert event.blocked is False
    assert event.event_metadata is None


def test_optional_fields_are_kept(client, db_session):
    body = dict(REPORT, request_method="PUT", response_status=401, blocked=True,
                metadata={"attempts": 3}, location="Berlin", user_id="u-1", request_body={"message": "<script>"})
    assert client.post(URL, json=body).status_code == 200

    event = db_session.query(DbSecurityEvent).one()
    assert (event.request_method, event.response_status, event.blocked) == ("PUT", 401, True)
    assert event.event_metadata == {"attempts": 3}
    assert event.location == "Berlin"
    assert event.user_id == "u-1"
    assert event.request_body == {"message": "<script>"}


@pytest.mark.parametrize("missing", ["event_type", "endpoint", "threat_level", "reason"])
def test_missing_required_field(client, db_session, missing):
    body = {k: v for k, v in REPORT.items() if k != missing}
    response = client.post(URL, json=body)
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "Missing required fields"
    assert db_session.query(DbSecurityEvent).count() == 0


def test_unknown_threat_level(client):
    response = client.post(URL, json=dict(REPORT, threat_level="severe"))
    assert response.status_code == 400


def test_unknown_event_type(client):
    response = client.post(URL, json=dict(REPORT, event_type="ddos"))
    assert response.status_code == 400


def test_storage_failure_is_acknowledged(app, client, broken_db_session):
    def _broken_db():
        yield broken_db_session

    app.dependency_overrides[get_db] = _broken_db

    response = client.post(URL, json=REPORT)
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "event_id": None,
        "message": "Security event acknowledged (logging unavailable)",
    }


@pytest.mark.parametrize("content", [b"", b"not json", b"null", b"[1, 2]", b'{"reason": 5}'])
def test_unreadable_report_is_acknowledged(client, db_session, content):
    response = client.post("/functions/log-security-event", content=content, headers={"Content-Type": "application/json"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Security event acknowledged"}
    assert db_session.query(DbSecurityEvent).count() == 0
