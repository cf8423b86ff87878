"""
Key state machine.

KeyState is an immutable snapshot of a key's public fields. Every transition
is a pure function returning a new snapshot; persistence is the store's job.

    active ──revoke──▶ revoked
    (any)  ──soft_delete──▶ deleted (deleted_at set, irreversible)
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Tuple


class KeyStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"


class ValidationOutcome(str, Enum):
    ALLOWED = "allowed"
    INVALID_KEY = "invalid_key"
    REVOKED = "revoked"
    EXPIRED = "expired"
    INSUFFICIENT_SCOPE = "insufficient_scope"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class KeyState:
    id: int
    owner: str
    status: KeyStatus
    scopes: Tuple[str, ...]
    created_at: datetime
    updated_at: datetime
    expiration: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


def is_expired(state: KeyState, now: datetime) -> bool:
    expiration = as_utc(state.expiration)
    return expiration is not None and expiration < as_utc(now)


def has_scope(state: KeyState, scope: str) -> bool:
    return scope in state.scopes


def evaluate(state: KeyState, scope: str, now: datetime) -> ValidationOutcome:
    """Decide a matched key's outcome: status, then expiration, then scope.

    Status and expiration come first so a dead key never reveals its scopes.
    """
    if state.status != KeyStatus.ACTIVE:
        return ValidationOutcome.REVOKED
    if is_expired(state, now):
        return ValidationOutcome.EXPIRED
    if not has_scope(state, scope):
        return ValidationOutcome.INSUFFICIENT_SCOPE
    return ValidationOutcome.ALLOWED


def revoke(state: KeyState, now: datetime) -> KeyState:
    """Return the revoked snapshot; an already revoked key comes back unchanged."""
    if state.status == KeyStatus.REVOKED:
        return state
    return replace(state, status=KeyStatus.REVOKED, updated_at=now)


def soft_delete(state: KeyState, now: datetime) -> KeyState:
    return replace(state, deleted_at=now, updated_at=now)


def replace_scopes(state: KeyState, scopes: Iterable[str], now: datetime) -> KeyState:
    return replace(state, scopes=tuple(scopes), updated_at=now)
