"""
Logging processors for structlog event processing.

Processors here redact credentials from log entries and guarantee that every
entry carries a correlation ID.
"""

import re
import uuid
from typing import Any

SENSITIVE_PATTERNS = [
    r"\bpassword\b",
    r"\btoken\b",
    r"\bsecret\b",
    r"_secret\b",
    r"_key\b",
    r"^key$",
    r"\bcredential\b",
    r"\bjwt\b",
    r"\bbearer\b",
    r"\bauthorization\b",
]

# Field names matching a pattern above that carry no secret material
SAFE_FIELDS = {
    "token_length",
    "rate_limit_key",
}

REDACTED = "[REDACTED]"


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower()
    if key_lower in SAFE_FIELDS:
        return False
    return any(re.search(pattern, key_lower) for pattern in SENSITIVE_PATTERNS)


def sanitize_sensitive_data(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Remove sensitive data from log entries.

    Redacts values whose keys look like passwords, tokens, secrets or
    authorization headers, recursing into nested dictionaries.

    Args:
        _logger: Logger instance (unused)
        _name: Logger name (unused)
        event_dict: Event dictionary to sanitize

    Returns:
        Sanitized event dictionary
    """

    def sanitize_dict(d: dict[str, Any]) -> dict[str, Any]:
        sanitized: dict[str, Any] = {}
        for key, value in d.items():
            if isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
            elif isinstance(key, str) and _is_sensitive(key):
                sanitized[key] = REDACTED
            else:
                sanitized[key] = value
        return sanitized

    return sanitize_dict(event_dict)


def add_correlation_id(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Add correlation ID to log entries if not already present.

    Runs after contextvars are merged, so a correlation ID bound for the
    current request wins over a freshly generated one.

    Args:
        _logger: Logger instance (unused)
        _name: Logger name (unused)
        event_dict: Event dictionary to enhance

    Returns:
        Enhanced event dictionary with correlation ID
    """
    if "correlation_id" not in event_dict:
        event_dict["correlation_id"] = str(uuid.uuid4())
    return event_dict
