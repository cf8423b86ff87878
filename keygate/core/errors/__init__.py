"""
Error code system.

KeyGateError is the base exception for all structured errors. Raise one of
its subclasses with an error code from the registry and the error handler
produces a structured JSON response.

Usage:
    from keygate.core.errors import NotFoundError
    raise NotFoundError("API key not found", code="KG-KEY-001")
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^KG-[A-Z]{2,6}-\d{3}$")

GENERIC_SERVER_MESSAGE = "Internal server error"

# Every code keygate raises. The registry must define each one before the
# service starts.
RAISED_CODES = frozenset(
    {
        "KG-API-001",  # missing field
        "KG-API-002",  # malformed scope
        "KG-API-003",  # status other than "revoked"
        "KG-API-004",  # unparseable or mistyped body
        "KG-KEY-001",
        "KG-KEY-002",
        "KG-DB-001",
        "KG-SEC-001",
        "KG-SYS-001",
    }
)


class KeyGateError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "KG-KEY-001".
        detail: Internal-only detail message (never exposed to callers).
        context: Arbitrary key-value context for structured logging.
        public_message: Caller-facing message. Only caller errors set it;
            everything else answers with the registry's safe message.
    """

    default_code = "KG-SYS-001"

    def __init__(
        self,
        code: str | None = None,
        detail: str | None = None,
        context: dict | None = None,
        public_message: str | None = None,
    ) -> None:
        code = code or self.default_code
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        self.public_message = public_message
        super().__init__(f"{code}: {detail or public_message}" if (detail or public_message) else code)


class ValidationInputError(KeyGateError):
    """Missing or malformed request fields. Always the caller's fault."""

    default_code = "KG-API-001"

    def __init__(self, message: str, code: str | None = None, context: dict | None = None) -> None:
        super().__init__(code, detail=message, context=context, public_message=message)


class NotFoundError(KeyGateError):
    """The operation targets an absent or already soft-deleted record."""

    default_code = "KG-KEY-001"

    def __init__(self, message: str, code: str | None = None, context: dict | None = None) -> None:
        super().__init__(code, detail=message, context=context, public_message=message)


class InternalError(KeyGateError):
    """Store unavailable, KDF failure, serialization failure."""

    default_code = "KG-SYS-001"
