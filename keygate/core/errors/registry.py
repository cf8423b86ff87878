"""
Error catalogue backed by registry.yaml.

Each entry maps a code raised somewhere in keygate to the HTTP status,
title, log level and caller-safe message the error handler answers with.
``load()`` refuses to start the service when the file is malformed or when a
code in ``RAISED_CODES`` has no entry.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

import yaml

from keygate.core.errors import CODE_PATTERN, GENERIC_SERVER_MESSAGE, RAISED_CODES

logger = logging.getLogger(__name__)

DEFAULT_PATH = os.path.join(os.path.dirname(__file__), "registry.yaml")

DOMAINS = ("API", "KEY", "DB", "SEC", "SYS")
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}
_REQUIRED = ("title", "severity", "http_status", "safe_message")


@dataclass(frozen=True)
class ErrorEntry:
    code: str
    title: str
    log_level: int
    http_status: int
    safe_message: str
    retryable: bool = False
    user_action_required: bool = False
    remediation: Tuple[str, ...] = ()

    @property
    def domain(self) -> str:
        return self.code.split("-")[1]

    def body(self, public_message: Optional[str] = None) -> dict:
        """JSON error body. *public_message* only replaces the safe message below 500."""
        message = public_message if public_message and self.http_status < 500 else self.safe_message
        return {
            "error": {
                "code": self.code,
                "title": self.title,
                "message": message,
                "retryable": self.retryable,
                "user_action_required": self.user_action_required,
                "remediation": list(self.remediation),
            }
        }


def unregistered(code: str) -> ErrorEntry:
    """Stand-in for a code with no registry entry: an opaque 500."""
    return ErrorEntry(
        code=code,
        title="Internal error",
        log_level=logging.ERROR,
        http_status=500,
        safe_message=GENERIC_SERVER_MESSAGE,
    )


class RegistryValidationError(Exception):
    """registry.yaml is malformed or leaves a raised code uncovered."""


def _parse_entry(idx: int, raw) -> ErrorEntry:
    if not isinstance(raw, dict):
        raise RegistryValidationError(f"Entry {idx}: expected a mapping")
    code = raw.get("code")
    if not isinstance(code, str) or not CODE_PATTERN.match(code):
        raise RegistryValidationError(f"Entry {idx}: invalid code {code!r}")

    missing = [name for name in _REQUIRED if name not in raw]
    if missing:
        raise RegistryValidationError(f"{code}: missing {', '.join(missing)}")

    domain = code.split("-")[1]
    if domain not in DOMAINS:
        raise RegistryValidationError(f"{code}: unknown domain {domain!r}")

    level = LOG_LEVELS.get(raw["severity"])
    if level is None:
        raise RegistryValidationError(f"{code}: unknown severity {raw['severity']!r}")

    status = int(raw["http_status"])
    if not 400 <= status <= 599:
        raise RegistryValidationError(f"{code}: {status} is not an error status")
    # 5xx answers never describe the failure
    if status >= 500 and raw["safe_message"] != GENERIC_SERVER_MESSAGE:
        raise RegistryValidationError(f"{code}: server errors must answer {GENERIC_SERVER_MESSAGE!r}")

    return ErrorEntry(
        code=code,
        title=raw["title"],
        log_level=level,
        http_status=status,
        safe_message=raw["safe_message"],
        retryable=bool(raw.get("retryable", False)),
        user_action_required=bool(raw.get("user_action_required", False)),
        remediation=tuple(raw.get("remediation") or ()),
    )


class ErrorRegistry:
    def __init__(self) -> None:
        self._entries: Dict[str, ErrorEntry] = {}

    def load(self, path: str | None = None, required: Iterable[str] = RAISED_CODES) -> None:
        """Parse *path* and check it covers every code in *required*.

        The previous entries stay in place when validation fails.
        """
        with open(path or DEFAULT_PATH, "r") as f:
            data = yaml.safe_load(f) or {}

        raw_entries = data.get("errors")
        if not isinstance(raw_entries, list):
            raise RegistryValidationError("'errors' must be a list")

        entries: Dict[str, ErrorEntry] = {}
        for idx, raw in enumerate(raw_entries):
            entry = _parse_entry(idx, raw)
            if entry.code in entries:
                raise RegistryValidationError(f"{entry.code}: defined twice")
            entries[entry.code] = entry

        uncovered = sorted(set(required) - set(entries))
        if uncovered:
            raise RegistryValidationError(f"No entry for raised codes: {', '.join(uncovered)}")

        self._entries = entries
        logger.info("error_registry_loaded", extra={"count": len(entries)})

    def __contains__(self, code: object) -> bool:
        return code in self._entries

    def resolve(self, code: str) -> ErrorEntry:
        """The registered entry for *code*, or an opaque 500 stand-in."""
        return self._entries.get(code) or unregistered(code)


# Loaded once by the app lifespan
error_registry = ErrorRegistry()
