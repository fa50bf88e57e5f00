"""
Depth-first scan of a parsed JSON body.

The body is treated as the JSON tagged union: string, number/bool, null,
object (dict) and array (list). Only strings are handed to the matcher.
Objects are walked in insertion order (the order json.loads produces), arrays
element by element with the index as key. The first offending leaf stops the
walk: findings are never collected exhaustively.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

# Key reported for a body that is a bare JSON string
ROOT_KEY = "$"

Matcher = Callable[[Any], bool]


@dataclass(frozen=True)
class Finding:
    """First offending leaf: the key holding it and the string that matched."""
    key: str
    value: str


def parse_body(raw: Optional[Union[str, bytes]]) -> Any:
    """
    Parse a request body for scanning:
    - empty/missing body -> None (nothing to scan)
    - valid JSON -> the parsed value
    - anything else -> {"raw": body}, so malformed bodies are still inspected as one string field.
      JSON nested deeper than the decoder accepts is handled the same way.
    """
    if not raw:
        return None

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, (bytes, bytearray)) else raw
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return {"raw": text}


def _children(container):
    if isinstance(container, dict):
        return iter(container.items())
    return enumerate(container)


def _walk(container, matcher: Matcher) -> Optional[Finding]:
    # Explicit stack of iterators: depth is bounded by memory, not by the interpreter recursion limit
    stack = [_children(container)]
    while stack:
        item = next(stack[-1], None)
        if item is None:
            stack.pop()
            continue
        key, value = item
        if isinstance(value, str):
            if matcher(value):
                return Finding(key=str(key), value=value)
        elif isinstance(value, (dict, list)):
            stack.append(_children(value))
        # Numbers, booleans and null cannot carry a payload
    return None


def scan(value: Any, matcher: Matcher) -> Optional[Finding]:
    """
    Return the first {key, value} pair of `value` flagged by `matcher`, or None.
    A bare top-level string is scanned under the key "$".
    """
    if isinstance(value, str):
        return Finding(key=ROOT_KEY, value=value) if matcher(value) else None
    if isinstance(value, (dict, list)):
        return _walk(value, matcher)
    return None
