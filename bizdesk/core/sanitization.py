"""
Input screening: markup sanitization and SQL-injection heuristics.

Both entry points are pure functions; callers decide what to log when a
value is rejected.
"""

import re
from typing import Any

_BLOCK_PATTERNS = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE),
]

_TAG_PATTERNS = [
    re.compile(r"</?(?:script|iframe|object|embed)\b[^>]*>", re.IGNORECASE),
    re.compile(r"<(?:img|link|meta)\b[^>]*>", re.IGNORECASE),
]

_SCHEME_PATTERN = re.compile(r"(?:javascript|vbscript)\s*:|\bdata\s*:", re.IGNORECASE)
_EVENT_HANDLER_PATTERN = re.compile(r"\bon\w+\s*=", re.IGNORECASE)

SQL_INJECTION_PATTERNS = [
    re.compile(r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|UNION)\b", re.IGNORECASE),
    re.compile(r"(;|--|/\*|\*/)"),
    re.compile(r"\b(UNION|OR|AND)\b.*\b(SELECT|INSERT|UPDATE|DELETE)\b", re.IGNORECASE),
    re.compile(r"['\"].*(\bOR\b|\bAND\b).*(=|LIKE)", re.IGNORECASE),
]


def _sanitize_pass(value: str) -> str:
    for pattern in _BLOCK_PATTERNS:
        value = pattern.sub("", value)
    for pattern in _TAG_PATTERNS:
        value = pattern.sub("", value)
    value = _SCHEME_PATTERN.sub("", value)
    value = _EVENT_HANDLER_PATTERN.sub("", value)
    return value.strip()


def sanitize_string(value: str) -> str:
    """
    Strip dangerous markup from a single string.

    Passes repeat until nothing changes, so stripping one token can never
    leave behind a new one (``javajavascript:script:``). Every pass only
    removes characters, so the loop terminates.
    """
    while True:
        cleaned = _sanitize_pass(value)
        if cleaned == value:
            return cleaned
        value = cleaned


def sanitize_input(value: Any) -> Any:
    """Recursively sanitize every string leaf of dicts, lists and tuples."""
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, dict):
        return {key: sanitize_input(item) for key, item in value.items()}
    if isinstance(value, list):
        return [sanitize_input(item) for item in value]
    if isinstance(value, tuple):
        return tuple(sanitize_input(item) for item in value)
    return value


def find_sql_injection(value: Any) -> str | None:
    """Return the first string leaf matching an injection pattern, if any."""
    if isinstance(value, str):
        for pattern in SQL_INJECTION_PATTERNS:
            if pattern.search(value):
                return value
        return None
    if isinstance(value, dict):
        items = value.values()
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        return None
    for item in items:
        match = find_sql_injection(item)
        if match is not None:
            return match
    return None


def validate_sql_params(params: Any) -> bool:
    """False as soon as any leaf looks like a SQL-injection attempt."""
    return find_sql_injection(params) is None
