"""
Key lifecycle — issue, list, revoke, soft delete, scope update, usage query.

Input checks run before the store is touched. Not-found is derived from the
store returning no row for a guarded mutation.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from keygate.core import credentials
from keygate.core.credentials import DEFAULT_KDF_PARAMS, KdfParams
from keygate.core.errors import NotFoundError, ValidationInputError
from keygate.core.key_state import KeyState, KeyStatus, as_utc
from keygate.core.scopes import validate_scopes
from keygate.services.key_store import KeyStore, UsageRow

logger = logging.getLogger(__name__)

OWNER_REQUIRED_MESSAGE = "Owner is required"
REVOKE_ONLY_MESSAGE = 'Only status "revoked" is allowed for updates'
KEY_NOT_FOUND_MESSAGE = "API key not found"
KEY_NOT_FOUND_OR_DELETED_MESSAGE = "API key not found or already deleted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IssuedKey:
    """A freshly issued key. ``secret`` exists only in this object."""

    state: KeyState
    secret: str = field(repr=False)


@dataclass(frozen=True)
class UsageReport:
    key_id: int
    key_info: Optional[KeyState]
    records: List[UsageRow]

    @property
    def total_requests(self) -> int:
        return len(self.records)


class KeyService:
    def __init__(
        self,
        store: KeyStore,
        kdf_params: KdfParams = DEFAULT_KDF_PARAMS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._kdf_params = kdf_params
        self._clock = clock

    def issue(self, owner: Any, scopes: Any = None, expiration: Optional[datetime] = None) -> IssuedKey:
        if not isinstance(owner, str) or not owner.strip():
            raise ValidationInputError(OWNER_REQUIRED_MESSAGE, code="KG-API-001")
        scopes = validate_scopes([] if scopes is None else scopes)

        generated = credentials.generate(self._kdf_params)
        state = self._store.insert_key(
            verifier=generated.verifier,
            salt=generated.salt,
            owner=owner,
            scopes=scopes,
            expiration=as_utc(expiration),
            now=self._clock(),
        )
        logger.info(
            "api_key_issued",
            extra={"key_id": state.id, "owner": owner, "scopes": scopes},
        )
        return IssuedKey(state=state, secret=generated.secret)

    def list_keys(self) -> List[KeyState]:
        return self._store.list_keys()

    def revoke(self, key_id: int, status: Any = KeyStatus.REVOKED.value) -> KeyState:
        if status != KeyStatus.REVOKED.value:
            raise ValidationInputError(REVOKE_ONLY_MESSAGE, code="KG-API-003")
        state = self._store.revoke(key_id, self._clock())
        if state is None:
            raise NotFoundError(KEY_NOT_FOUND_MESSAGE, code="KG-KEY-001", context={"key_id": key_id})
        logger.info("api_key_revoked", extra={"key_id": key_id})
        return state

    def soft_delete(self, key_id: int) -> KeyState:
        state = self._store.soft_delete(key_id, self._clock())
        if state is None:
            raise NotFoundError(KEY_NOT_FOUND_OR_DELETED_MESSAGE, code="KG-KEY-002", context={"key_id": key_id})
        logger.info("api_key_deleted", extra={"key_id": key_id})
        return state

    def update_scopes(self, key_id: int, scopes: Any) -> KeyState:
        scopes = validate_scopes(scopes)
        state = self._store.replace_scopes(key_id, scopes, self._clock())
        if state is None:
            raise NotFoundError(KEY_NOT_FOUND_MESSAGE, code="KG-KEY-001", context={"key_id": key_id})
        logger.info("api_key_scopes_updated", extra={"key_id": key_id, "scopes": scopes})
        return state

    def usage_for_key(self, key_id: int) -> UsageReport:
        """Usage history for *key_id*, deleted keys included. Unknown ids give an empty report."""
        return UsageReport(
            key_id=key_id,
            key_info=self._store.get(key_id, include_deleted=True),
            records=self._store.usage_for_key(key_id),
        )
