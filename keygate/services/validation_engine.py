"""
Validation Engine — allow/deny decisions for presented API keys.

Order of checks:
  1. Input preconditions (before any store access or audit write)
  2. Full scan of non-deleted keys, recomputing each verifier with the
     key's own salt (no index exists: verifiers are salted per key)
  3. No match            → invalid_key
  4. status != active    → revoked
  5. expiration < now    → expired
  6. scope not granted   → insufficient_scope
  7. otherwise           → allowed

Exactly one usage record is written per decision, through the recorder.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from keygate.core import key_state
from keygate.core.credentials import DEFAULT_KDF_PARAMS, KdfParams, verify
from keygate.core.errors import ValidationInputError
from keygate.core.key_state import KeyState, ValidationOutcome
from keygate.core.scopes import SCOPE_FORMAT_MESSAGE, is_well_formed
from keygate.services.key_store import KeyStore, UsageEntry
from keygate.services.usage_recorder import UsageRecorder

logger = logging.getLogger(__name__)

VALIDATE_ACTION = "validate"
REQUIRED_FIELDS_MESSAGE = "apiKey, scope, and service are required"

DENIAL_REASONS = {
    ValidationOutcome.INVALID_KEY: "Invalid API key",
    ValidationOutcome.REVOKED: "API key is revoked",
    ValidationOutcome.EXPIRED: "API key has expired",
    ValidationOutcome.INSUFFICIENT_SCOPE: "Insufficient scope",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CallerContext:
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    endpoint: str = "/validate"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    outcome: ValidationOutcome
    reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    key_id: Optional[int] = None
    usage_record_id: Optional[int] = field(default=None, compare=False)

    def to_response(self) -> Dict[str, Any]:
        if self.allowed:
            return {"allowed": True, "metadata": self.metadata}
        return {"allowed": False, "reason": self.reason}


class ValidationEngine:
    def __init__(
        self,
        store: KeyStore,
        recorder: Optional[UsageRecorder] = None,
        kdf_params: KdfParams = DEFAULT_KDF_PARAMS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._recorder = recorder or UsageRecorder(store)
        self._kdf_params = kdf_params
        self._clock = clock

    def validate(
        self,
        presented_secret: Optional[str],
        required_scope: Optional[str],
        service_name: Optional[str],
        caller: Optional[CallerContext] = None,
    ) -> Decision:
        if not presented_secret or not required_scope or not service_name:
            raise ValidationInputError(REQUIRED_FIELDS_MESSAGE, code="KG-API-001")
        if not all(isinstance(v, str) for v in (presented_secret, required_scope, service_name)):
            raise ValidationInputError(REQUIRED_FIELDS_MESSAGE, code="KG-API-001")
        if not is_well_formed(required_scope):
            raise ValidationInputError(SCOPE_FORMAT_MESSAGE, code="KG-API-002")

        caller = caller or CallerContext()
        matched = self._find_key(presented_secret)
        now = self._clock()

        if matched is None:
            outcome = ValidationOutcome.INVALID_KEY
        else:
            outcome = key_state.evaluate(matched, required_scope, now)

        decision = self._decide(outcome, matched, service_name, now)
        usage_id = self._recorder.record(
            UsageEntry(
                api_key_id=matched.id if matched else None,
                action=VALIDATE_ACTION,
                endpoint=caller.endpoint,
                ip=caller.ip,
                user_agent=caller.user_agent,
                metadata={"service": service_name, "scope": required_scope, "result": outcome.value},
                timestamp=now,
            )
        )

        logger.info(
            "key_validated",
            extra={
                "validation.result": outcome.value,
                "validation.key_id": decision.key_id,
                "validation.service": service_name,
                "validation.scope": required_scope,
            },
        )
        return replace(decision, usage_record_id=usage_id)

    def _find_key(self, presented_secret: str) -> Optional[KeyState]:
        """Return the first candidate whose verifier matches.

        Every candidate is checked even after a match, so the scan's duration
        does not depend on where the matching key sits.
        """
        match: Optional[KeyState] = None
        for candidate in self._store.candidates():
            hit = verify(presented_secret, candidate.salt, candidate.verifier, self._kdf_params)
            if hit and match is None:
                match = candidate.state
        return match

    def _decide(
        self,
        outcome: ValidationOutcome,
        matched: Optional[KeyState],
        service_name: str,
        now: datetime,
    ) -> Decision:
        key_id = matched.id if matched else None
        if outcome != ValidationOutcome.ALLOWED:
            return Decision(allowed=False, outcome=outcome, reason=DENIAL_REASONS[outcome], key_id=key_id)
        return Decision(
            allowed=True,
            outcome=outcome,
            key_id=key_id,
            metadata={
                "keyId": matched.id,
                "owner": matched.owner,
                "scopes": list(matched.scopes),
                "service": service_name,
                "validatedAt": now.isoformat(),
            },
        )
