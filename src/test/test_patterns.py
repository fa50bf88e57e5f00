import pytest
from fusion_gate.security.patterns import (
    ThreatCategory, detect_command_injection, detect_path_traversal,
    detect_sql_injection, detect_xss, is_suspicious_user_agent, matches,
)


@pytest.mark.parametrize("value", [
    "a' OR '1'='1",
    "admin'--",
    "1 UNION SELECT password FROM users",
    "x; DROP TABLE users",
    "id=1 OR 1=1",
    "exec xp_cmdshell",
])
def test_sql_injection_detected(value):
    assert detect_sql_injection(value) is True


@pytest.mark.parametrize("value", [
    "<script>alert(1)</script>",
    "<img src=x onerror=alert(1)>",
    "javascript:alert(1)",
    "<svg onload=alert(1)>",
    "&#60;script",
])
def test_xss_detected(value):
    assert detect_xss(value) is True


@pytest.mark.parametrize("value", ["../../etc/passwd", "..\\windows\\win.ini", "%2e%2e%2fetc", "..%2fetc"])
def test_path_traversal_detected(value):
    assert detect_path_traversal(value) is True


@pytest.mark.parametrize("value", ["x; cat /etc/passwd", "a | bash -i", "`id`", "$(whoami)"])
def test_command_injection_detected(value):
    assert detect_command_injection(value) is True


@pytest.mark.parametrize("value", ["alice@example.com", "Alice Smith", "supersecret1", "track 12 of 20"])
def test_clean_values_pass_every_category(value):
    for category in ThreatCategory:
        assert matches(category, value) is False


def test_case_insensitive():
    assert detect_sql_injection("union select * from users") is True
    assert detect_xss("<SCRIPT>alert(1)</SCRIPT>") is True


def test_non_strings_never_match():
    for value in (None, 42, 3.5, True, ["<script>x</script>"], {"a": "' OR 1=1"}):
        for category in ThreatCategory:
            assert matches(category, value) is False


@pytest.mark.parametrize("ua", ["sqlmap/1.5#stable", "Mozilla/5.00 (Nikto/2.1.6)", "Nmap Scripting Engine", "Burp Suite"])
def test_hacking_tools_user_agents(ua):
    assert is_suspicious_user_agent(ua) is True


def test_browser_user_agent_is_not_suspicious():
    assert is_suspicious_user_agent("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36") is False
    assert is_suspicious_user_agent(None) is False
