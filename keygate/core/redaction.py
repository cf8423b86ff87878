"""
Redaction for log entries.

Key-based: values under secret-looking keys are replaced outright.
Value-based: long hex runs (raw keys, verifiers) are replaced wherever
they appear. Secrets are never partially revealed.
"""
from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

# Case-insensitive substring match on the key name
_SENSITIVE_KEY_SUBSTRINGS = frozenset({
    "password", "secret", "token", "apikey", "api_key",
    "authorization", "bearer", "cookie", "salt", "key_hash",
    "verifier", "credential",
})

_HEX_SECRET_PATTERN = re.compile(r"[a-fA-F0-9]{48,}")


def _is_sensitive_key(key: str) -> bool:
    lower = key.lower()
    return any(s in lower for s in _SENSITIVE_KEY_SUBSTRINGS)


def redact_string(value: str) -> str:
    """Apply value-based redaction to a string."""
    return _HEX_SECRET_PATTERN.sub(REDACTED, value)


def redact_log_entry(entry: dict) -> dict:
    """Apply key-based and value-based redaction to a (possibly nested) log entry."""
    result = {}
    for k, v in entry.items():
        if _is_sensitive_key(str(k)) and v is not None:
            result[k] = REDACTED
        else:
            result[k] = _redact_any(v)
    return result


def _redact_any(value: Any) -> Any:
    if isinstance(value, dict):
        return redact_log_entry(value)
    if isinstance(value, (list, tuple)):
        return [_redact_any(item) for item in value]
    if isinstance(value, str):
        return redact_string(value)
    return value


def structlog_redaction_processor(logger, method_name, event_dict):
    """Structlog processor: redact the event dict before rendering."""
    return redact_log_entry(event_dict)
