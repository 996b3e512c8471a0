"""Redaction helpers for log lines and displayed errors.

Request headers, token responses and credential records pass through
``redact_for_logging`` before they reach a log handler. Free text coming
back from the server or from httpx goes through ``sanitize_message``.
Key matching is a case-insensitive substring test.
"""

import re
from typing import Any

_DEFAULT_SENSITIVE_PATTERNS = frozenset({
    "authorization", "cookie", "password", "secret", "token",
    "assertion", "private_key", "pass",
})

_REDACTED = "***REDACTED***"


def _is_sensitive_key(key: str, sensitive_patterns: frozenset[str]) -> bool:
    key_lower = key.lower()
    return any(pattern in key_lower for pattern in sensitive_patterns)


def redact_for_logging(
    obj: dict[str, Any],
    sensitive_patterns: frozenset[str] = _DEFAULT_SENSITIVE_PATTERNS,
) -> dict[str, Any]:
    """Return a copy of ``obj`` with sensitive values replaced.

    Args:
        obj: Mapping to redact. Not mutated.
        sensitive_patterns: Substrings that mark a key as sensitive.

    Returns:
        New dict; nested dicts and lists of dicts are redacted recursively.
    """
    result: dict[str, Any] = {}
    for key, value in obj.items():
        if _is_sensitive_key(str(key), sensitive_patterns):
            result[key] = _REDACTED
        elif isinstance(value, dict):
            result[key] = redact_for_logging(value, sensitive_patterns)
        elif isinstance(value, list):
            result[key] = [
                redact_for_logging(item, sensitive_patterns) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value
    return result


_SENSITIVE_KEYWORDS = (
    r"password|secret|token|client_assertion|authorization|private_key"
)
_SENSITIVE_VALUE_PATTERNS = re.compile(
    r"(?i)"
    r"(?:"
    r"Authorization\s*:\s*(?:Basic|Bearer)\s+\S+"
    r"|"
    r'"(?:' + _SENSITIVE_KEYWORDS + r')"\s*:\s*"[^"]*"'
    r"|"
    r"(?:" + _SENSITIVE_KEYWORDS + r")\s*[=:]\s*\S+"
    r")",
)


def sanitize_message(msg: str | None, max_length: int = 500) -> str | None:
    """Redact credential-looking fragments and truncate.

    Args:
        msg: Message to sanitize; None passes through.
        max_length: Maximum length of the result.

    Returns:
        Sanitized message, or None.
    """
    if msg is None:
        return None
    sanitized = _SENSITIVE_VALUE_PATTERNS.sub(_REDACTED, msg)
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length - 3] + "..."
    return sanitized
