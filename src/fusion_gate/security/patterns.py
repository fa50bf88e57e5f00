"""
Threat signatures of the request gate.

Each category maps to an ordered tuple of compiled, case-insensitive
patterns. A value is dirty for a category when ANY of its patterns matches:
there is no score and no threshold. New signatures are added to the tables
below, the detectors themselves never change.
"""

import enum
import re
from typing import Any, Dict, Pattern, Tuple


class ThreatCategory(str, enum.Enum):
    SQL_INJECTION = "sql_injection"
    XSS = "xss_attempt"
    PATH_TRAVERSAL = "path_traversal"
    COMMAND_INJECTION = "command_injection"


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# Shell commands commonly chained after ; or |
_SHELL_COMMANDS = r"(ls|cat|curl|wget|nc|bash|sh|python|perl|ruby)"

THREAT_PATTERNS: Dict[ThreatCategory, Tuple[Pattern, ...]] = {
    ThreatCategory.SQL_INJECTION: _compile(
        r"(%27)|(')|(--)|(%23)|(#)",                                # quote, comment or hash (raw or encoded)
        r"((%3D)|(=))[^\n]*((%27)|(')|(--)|(%3B)|(;))",             # assignment followed by quote/comment/semicolon
        r"\w*((%27)|('))((%6F)|o|(%4F))((%72)|r|(%52))",            # ' or
        r"((%27)|('))union",
        r"exec(\s|\+)+(s|x)p\w+",                                   # exec sp_/xp_ procedures
        r"UNION.*SELECT",
        r"SELECT.*FROM",
        r"INSERT.*INTO",
        r"DELETE.*FROM",
        r"DROP.*TABLE",
        r"UPDATE.*SET",
        r"1=1",
        r"1' OR '1'='1",
        r"admin'--",
        r"OR 1=1",
    ),
    ThreatCategory.XSS: _compile(
        r"<script[^>]*>.*?</script>",
        r"<iframe[^>]*>.*?</iframe>",
        r"javascript:",
        r"on\w+\s*=",                                               # onload=, onclick=, ...
        r"<img[^>]*onerror",
        r"<svg[^>]*onload",
        r"eval\(",
        r"expression\(",
        r"vbscript:",
        r"&#",                                                      # HTML entity encoding
    ),
    ThreatCategory.PATH_TRAVERSAL: _compile(
        r"\.\./",
        r"\.\.\\",
        r"%2e%2e%2f",
        r"%2e%2e/",
        r"\.\.%2f",
    ),
    ThreatCategory.COMMAND_INJECTION: _compile(
        r";\s*" + _SHELL_COMMANDS + r"\s",
        r"\|\s*" + _SHELL_COMMANDS + r"\s",
        r"`.*`",                                                    # backtick substitution
        r"\$\(.*\)",                                                # $( ) substitution
    ),
}

# Scanner and attack-tool signatures looked for in the User-Agent header
SUSPICIOUS_USER_AGENTS: Tuple[Pattern, ...] = _compile(
    r"sqlmap",
    r"nikto",
    r"nmap",
    r"masscan",
    r"metasploit",
    r"burp",
    r"havij",
    r"acunetix",
)


def matches(category: ThreatCategory, value: Any) -> bool:
    """Return True when `value` is a string matching any pattern of `category`."""
    if not isinstance(value, str):
        return False
    return any(p.search(value) for p in THREAT_PATTERNS[category])


def detect_sql_injection(value: Any) -> bool:
    return matches(ThreatCategory.SQL_INJECTION, value)


def detect_xss(value: Any) -> bool:
    return matches(ThreatCategory.XSS, value)


def detect_path_traversal(value: Any) -> bool:
    return matches(ThreatCategory.PATH_TRAVERSAL, value)


def detect_command_injection(value: Any) -> bool:
    return matches(ThreatCategory.COMMAND_INJECTION, value)


def is_suspicious_user_agent(user_agent: Any) -> bool:
    """Match the User-Agent against known hacking tools, independently of the body."""
    if not isinstance(user_agent, str):
        return False
    return any(p.search(user_agent) for p in SUSPICIOUS_USER_AGENTS)
