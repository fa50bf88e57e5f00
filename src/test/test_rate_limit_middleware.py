from fusion_gate.db.models import DbSecurityEvent

VALID = {"email": "alice@example.com", "fullName": "Alice Smith", "password": "supersecret1"}


def test_allowed_responses_carry_rate_limit_headers(client, clock):
    response = client.post("/api/signup", json=VALID)
    assert response.status_code == 201
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "4"
    assert response.headers["X-RateLimit-Reset"] == str((clock.now + 3_600_000) // 1000)


def test_sixth_signup_in_an_hour_gets_429(client, clock, db_session):
    for expected_remaining in ("4", "3", "2", "1", "0"):
        assert client.post("/api/signup", json=VALID).headers["X-RateLimit-Remaining"] == expected_remaining

    clock.advance(10_000)
    # The handler and the gate are not reached: no security event for this body
    response = client.post("/api/signup", json={"email": "a' OR '1'='1"})
    assert response.status_code == 429
    assert response.json() == {"error": "Rate limit exceeded", "retryAfter": 3590}
    assert response.headers["Retry-After"] == "3590"
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert db_session.query(DbSecurityEvent).count() == 0


def test_new_window_after_reset(client, clock):
    for _ in range(6):
        client.post("/api/signup", json=VALID)

    clock.advance(3_600_001)
    response = client.post("/api/signup", json=VALID)
    assert response.status_code == 201
    assert response.headers["X-RateLimit-Remaining"] == "4"


def test_limits_are_per_forwarded_ip(client):
    for _ in range(5):
        client.post("/api/signup", json=VALID, headers={"X-Forwarded-For": "203.0.113.1"})

    assert client.post("/api/signup", json=VALID, headers={"X-Forwarded-For": "203.0.113.1"}).status_code == 429
    assert client.post("/api/signup", json=VALID, headers={"X-Forwarded-For": "203.0.113.2"}).status_code == 201


def test_exempt_paths_are_never_limited(client):
    for _ in range(70):
        for path in ("/", "/assets/app.js", "/favicon.ico"):
            response = client.get(path)
            assert response.status_code != 429
            assert "X-RateLimit-Limit" not in response.headers


def test_functions_namespace_is_exempt(client):
    body = {"event_type": "xss_attempt", "endpoint": "contact-form", "threat_level": "high", "reason": "blocked input"}
    for _ in range(70):
        response = client.post("/functions/log-security-event", json=body)
        assert response.status_code == 200
    assert "X-RateLimit-Limit" not in response.headers


def test_default_bucket(client):
    # Unknown pages still count, a 404 uses the quota too
    for _ in range(60):
        assert client.get("/pricing").status_code == 404
    response = client.get("/pricing")
    assert response.status_code == 429
    assert response.headers["X-RateLimit-Limit"] == "60"


def test_health_checks_are_never_limited(client):
    for _ in range(70):
        for path in ("/healthz", "/readyz"):
            response = client.get(path)
            assert response.status_code == 200
            assert "X-RateLimit-Limit" not in response.headers
