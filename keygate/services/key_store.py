"""
Key Store — persistence boundary for api_keys and usage_records.

``KeyStore`` is the interface the validation engine and key service depend
on; ``SQLKeyStore`` implements it on SQLModel sessions. Tests substitute
their own implementation.

Mutations are single-row conditional UPDATEs guarded by
``deleted_at IS NULL`` that write only the columns the transition owns
(revoke: status, updated_at; soft delete: deleted_at, updated_at; scope
update: scopes, updated_at). Revoke is further guarded by ``status =
'active'``. The transition itself is computed by the pure functions in
``keygate.core.key_state``.

Any SQLAlchemy failure surfaces as ``InternalError("KG-DB-001")``; nothing
is retried here.
"""

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, ContextManager, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from keygate.core import key_state
from keygate.core.database import get_session_context
from keygate.core.errors import InternalError
from keygate.core.key_state import KeyState, KeyStatus, as_utc
from keygate.models.api_key import ApiKeyRecord, UsageRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredCredential:
    """A key's public state plus the material needed to recheck a secret."""

    state: KeyState
    verifier: str = field(repr=False)
    salt: str = field(repr=False)


@dataclass(frozen=True)
class UsageEntry:
    """A usage record waiting to be appended."""

    api_key_id: Optional[int]
    action: str
    endpoint: Optional[str]
    ip: Optional[str]
    user_agent: Optional[str]
    metadata: Dict[str, object]
    timestamp: datetime


@dataclass(frozen=True)
class UsageRow:
    """A stored usage record joined with its key's owner/status/deleted_at."""

    id: int
    api_key_id: Optional[int]
    timestamp: datetime
    action: str
    endpoint: Optional[str]
    ip: Optional[str]
    user_agent: Optional[str]
    metadata: Dict[str, object]
    owner: Optional[str] = None
    status: Optional[str] = None
    deleted_at: Optional[datetime] = None


def _column_values(state: KeyState, columns: Tuple[str, ...]) -> Dict[str, object]:
    row = {
        "status": state.status.value,
        "scopes": json.dumps(list(state.scopes)),
        "updated_at": state.updated_at,
        "deleted_at": state.deleted_at,
    }
    return {name: row[name] for name in columns}


class KeyStore(Protocol):
    def insert_key(
        self,
        verifier: str,
        salt: str,
        owner: str,
        scopes: List[str],
        expiration: Optional[datetime],
        now: datetime,
    ) -> KeyState: ...

    def candidates(self) -> List[StoredCredential]: ...

    def list_keys(self) -> List[KeyState]: ...

    def get(self, key_id: int, include_deleted: bool = False) -> Optional[KeyState]: ...

    def revoke(self, key_id: int, now: datetime) -> Optional[KeyState]: ...

    def soft_delete(self, key_id: int, now: datetime) -> Optional[KeyState]: ...

    def replace_scopes(self, key_id: int, scopes: List[str], now: datetime) -> Optional[KeyState]: ...

    def append_usage(self, entry: UsageEntry) -> int: ...

    def usage_for_key(self, key_id: int) -> List[UsageRow]: ...


class SQLKeyStore:
    """KeyStore over SQLModel sessions."""

    def __init__(self, session_factory: Callable[[], ContextManager[Session]] = get_session_context):
        self._session_factory = session_factory

    @contextmanager
    def _store_errors(self, operation: str):
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error(
                "key_store_failure",
                extra={"store.operation": operation, "error.kind": type(exc).__name__},
            )
            raise InternalError("KG-DB-001", detail=f"{operation}: {type(exc).__name__}") from exc

    # -- keys ---------------------------------------------------------------

    def insert_key(self, verifier, salt, owner, scopes, expiration, now) -> KeyState:
        record = ApiKeyRecord(
            key_hash=verifier,
            salt=salt,
            status=KeyStatus.ACTIVE.value,
            expiration=expiration,
            created_at=now,
            updated_at=now,
            scopes=json.dumps(list(scopes)),
            owner=owner,
        )
        with self._store_errors("insert_key"), self._session_factory() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return record.to_state()

    def candidates(self) -> List[StoredCredential]:
        with self._store_errors("candidates"), self._session_factory() as session:
            rows = session.exec(
                select(ApiKeyRecord).where(ApiKeyRecord.deleted_at.is_(None))  # type: ignore[union-attr]
            ).all()
            return [StoredCredential(state=r.to_state(), verifier=r.key_hash, salt=r.salt) for r in rows]

    def list_keys(self) -> List[KeyState]:
        with self._store_errors("list_keys"), self._session_factory() as session:
            rows = session.exec(
                select(ApiKeyRecord)
                .where(ApiKeyRecord.deleted_at.is_(None))  # type: ignore[union-attr]
                .order_by(ApiKeyRecord.created_at.desc(), ApiKeyRecord.id.desc())  # type: ignore[union-attr]
            ).all()
            return [r.to_state() for r in rows]

    def get(self, key_id: int, include_deleted: bool = False) -> Optional[KeyState]:
        with self._store_errors("get"), self._session_factory() as session:
            record = session.get(ApiKeyRecord, key_id)
            if record is None or (record.deleted_at is not None and not include_deleted):
                return None
            return record.to_state()

    def revoke(self, key_id: int, now: datetime) -> Optional[KeyState]:
        return self._transition(
            "revoke",
            key_id,
            lambda s: key_state.revoke(s, now),
            columns=("status", "updated_at"),
            guard=ApiKeyRecord.status == KeyStatus.ACTIVE.value,
        )

    def soft_delete(self, key_id: int, now: datetime) -> Optional[KeyState]:
        return self._transition(
            "soft_delete",
            key_id,
            lambda s: key_state.soft_delete(s, now),
            columns=("deleted_at", "updated_at"),
        )

    def replace_scopes(self, key_id: int, scopes: List[str], now: datetime) -> Optional[KeyState]:
        return self._transition(
            "replace_scopes",
            key_id,
            lambda s: key_state.replace_scopes(s, scopes, now),
            columns=("scopes", "updated_at"),
        )

    def _transition(
        self,
        operation: str,
        key_id: int,
        apply: Callable[[KeyState], KeyState],
        columns: Tuple[str, ...],
        guard=None,
    ) -> Optional[KeyState]:
        """Apply a pure transition and write back only the columns it owns.

        The UPDATE is guarded by ``deleted_at IS NULL`` plus the transition's
        own precondition, so a concurrent mutation of another column is never
        overwritten with the stale snapshot. The returned state is re-read
        after commit.
        """
        with self._store_errors(operation), self._session_factory() as session:
            record = session.get(ApiKeyRecord, key_id)
            if record is None or record.deleted_at is not None:
                return None
            current = record.to_state()
            updated = apply(current)
            if updated is current:
                return current

            statement = (
                update(ApiKeyRecord)
                .where(ApiKeyRecord.id == key_id, ApiKeyRecord.deleted_at.is_(None))  # type: ignore[union-attr]
                .values(**_column_values(updated, columns))
            )
            if guard is not None:
                statement = statement.where(guard)
            result = session.execute(statement)
            session.commit()

            # expire_on_commit: this reloads the row as committed
            record = session.get(ApiKeyRecord, key_id)
            if record is None:
                return None
            if result.rowcount == 0 and record.deleted_at is not None:
                return None
            return record.to_state()

    # -- usage --------------------------------------------------------------

    def append_usage(self, entry: UsageEntry) -> int:
        record = UsageRecord(
            api_key_id=entry.api_key_id,
            timestamp=entry.timestamp,
            action=entry.action,
            endpoint=entry.endpoint,
            ip=entry.ip,
            user_agent=entry.user_agent,
            metadata_json=json.dumps(entry.metadata),
        )
        with self._store_errors("append_usage"), self._session_factory() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return record.id

    def usage_for_key(self, key_id: int) -> List[UsageRow]:
        with self._store_errors("usage_for_key"), self._session_factory() as session:
            rows = session.exec(
                select(UsageRecord, ApiKeyRecord)
                .join(ApiKeyRecord, UsageRecord.api_key_id == ApiKeyRecord.id, isouter=True)
                .where(UsageRecord.api_key_id == key_id)
                .order_by(UsageRecord.timestamp.desc(), UsageRecord.id.desc())  # type: ignore[union-attr]
            ).all()
            return [
                UsageRow(
                    id=usage.id,
                    api_key_id=usage.api_key_id,
                    timestamp=as_utc(usage.timestamp),
                    action=usage.action,
                    endpoint=usage.endpoint,
                    ip=usage.ip,
                    user_agent=usage.user_agent,
                    metadata=usage.metadata_dict(),
                    owner=key.owner if key else None,
                    status=key.status if key else None,
                    deleted_at=as_utc(key.deleted_at) if key else None,
                )
                for usage, key in rows
            ]
