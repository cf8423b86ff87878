"""
Tests for KeyService and SQLKeyStore against the test SQLite database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from keygate.core.credentials import KdfParams, verify
from keygate.core.errors import InternalError, NotFoundError, ValidationInputError
from keygate.core import key_state
from keygate.core.key_state import KeyStatus, ValidationOutcome
from keygate.services.key_service import KeyService
from keygate.models.api_key import ApiKeyRecord, UsageRecord
from keygate.services.key_store import SQLKeyStore, UsageEntry
from keygate.services.validation_engine import ValidationEngine

FAST_KDF = KdfParams(n=1024, r=8, p=1, dklen=64)


@pytest.fixture
def store():
    return SQLKeyStore()


@pytest.fixture
def service(store):
    return KeyService(store, kdf_params=FAST_KDF)


def _usage(key_id, result="allowed"):
    return UsageEntry(
        api_key_id=key_id,
        action="validate",
        endpoint="/validate",
        ip="127.0.0.1",
        user_agent="pytest",
        metadata={"service": "svc", "scope": "orders:read", "result": result},
        timestamp=datetime.now(timezone.utc),
    )


class TestIssue:
    def test_issue_persists_verifier_not_secret(self, service, store):
        issued = service.issue("billing-service", ["orders:read"])
        assert issued.state.status == KeyStatus.ACTIVE
        assert issued.state.scopes == ("orders:read",)

        [stored] = store.candidates()
        assert stored.verifier != issued.secret
        assert verify(issued.secret, stored.salt, stored.verifier, FAST_KDF)

    def test_scopes_default_to_empty(self, service):
        assert service.issue("svc").state.scopes == ()

    def test_expiration_round_trips_as_utc(self, service):
        expires = datetime(2031, 1, 1, 9, 30, tzinfo=timezone(timedelta(hours=2)))
        state = service.issue("svc", expiration=expires).state
        assert state.expiration == expires
        assert state.expiration.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("owner", [None, "", "   ", 12])
    def test_owner_required(self, service, store, owner):
        with pytest.raises(ValidationInputError) as exc_info:
            service.issue(owner, ["orders:read"])
        assert exc_info.value.public_message == "Owner is required"
        assert store.list_keys() == []

    def test_malformed_scopes_rejected_before_insert(self, service, store):
        with pytest.raises(ValidationInputError) as exc_info:
            service.issue("svc", ["orders"])
        assert exc_info.value.code == "KG-API-002"
        assert store.list_keys() == []

    def test_secrets_are_unique(self, service):
        assert service.issue("a").secret != service.issue("b").secret


class TestList:
    def test_newest_first_without_deleted(self, service):
        first = service.issue("first").state
        second = service.issue("second").state
        third = service.issue("third").state
        service.soft_delete(second.id)

        assert [k.id for k in service.list_keys()] == [third.id, first.id]

    def test_includes_revoked(self, service):
        key = service.issue("svc").state
        service.revoke(key.id)
        [listed] = service.list_keys()
        assert listed.status == KeyStatus.REVOKED


class TestRevoke:
    def test_revoke(self, service):
        key = service.issue("svc").state
        revoked = service.revoke(key.id, "revoked")
        assert revoked.status == KeyStatus.REVOKED
        assert revoked.updated_at >= key.updated_at

    def test_revoke_twice_is_unchanged(self, service):
        key = service.issue("svc").state
        first = service.revoke(key.id)
        second = service.revoke(key.id)
        assert second.status == KeyStatus.REVOKED
        assert second.updated_at == first.updated_at

    @pytest.mark.parametrize("status", ["active", "deleted", None, ""])
    def test_only_revoked_status(self, service, status):
        key = service.issue("svc").state
        with pytest.raises(ValidationInputError) as exc_info:
            service.revoke(key.id, status)
        assert exc_info.value.code == "KG-API-003"

    def test_unknown_key(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            service.revoke(999_999)
        assert exc_info.value.public_message == "API key not found"

    def test_soft_deleted_key_is_not_found(self, service):
        key = service.issue("svc").state
        service.soft_delete(key.id)
        with pytest.raises(NotFoundError):
            service.revoke(key.id)


class TestSoftDelete:
    def test_sets_deleted_at_and_keeps_status(self, service, store):
        key = service.issue("svc").state
        deleted = service.soft_delete(key.id)
        assert deleted.deleted_at is not None
        assert deleted.status == KeyStatus.ACTIVE
        assert store.get(key.id) is None
        assert store.get(key.id, include_deleted=True).deleted_at == deleted.deleted_at

    def test_second_delete_is_not_found(self, service):
        key = service.issue("svc").state
        service.soft_delete(key.id)
        with pytest.raises(NotFoundError) as exc_info:
            service.soft_delete(key.id)
        assert exc_info.value.code == "KG-KEY-002"
        assert exc_info.value.public_message == "API key not found or already deleted"

    def test_deleted_key_leaves_candidates(self, service, store):
        key = service.issue("svc").state
        service.soft_delete(key.id)
        assert store.candidates() == []


class TestUpdateScopes:
    def test_replaces_scopes(self, service):
        key = service.issue("svc", ["orders:read"]).state
        updated = service.update_scopes(key.id, ["orders:write", "orders:write", "invoices:read"])
        assert updated.scopes == ("orders:write", "invoices:read")
        assert service.list_keys()[0].scopes == ("orders:write", "invoices:read")

    def test_unknown_key(self, service):
        with pytest.raises(NotFoundError):
            service.update_scopes(999_999, ["orders:read"])

    def test_malformed(self, service):
        key = service.issue("svc").state
        with pytest.raises(ValidationInputError):
            service.update_scopes(key.id, "orders:read")


class TestInterleavedWrites:
    """Another writer commits between the store's read and its UPDATE."""

    def _interleave(self, monkeypatch, transition, concurrent):
        original = getattr(key_state, transition)

        def _racing(*args, **kwargs):
            monkeypatch.setattr(key_state, transition, original)
            concurrent()
            return original(*args, **kwargs)

        monkeypatch.setattr(key_state, transition, _racing)

    def test_scope_update_keeps_concurrent_revoke(self, service, store, monkeypatch):
        issued = service.issue("svc", ["orders:read"])
        key_id = issued.state.id
        self._interleave(monkeypatch, "replace_scopes", lambda: service.revoke(key_id))

        updated = service.update_scopes(key_id, ["orders:read", "orders:write"])

        assert updated.status == KeyStatus.REVOKED
        assert updated.scopes == ("orders:read", "orders:write")
        assert store.get(key_id).status == KeyStatus.REVOKED
        decision = ValidationEngine(store, kdf_params=FAST_KDF).validate(issued.secret, "orders:read", "svc")
        assert decision.outcome == ValidationOutcome.REVOKED

    def test_revoke_after_concurrent_delete_is_not_found(self, service, store, monkeypatch):
        key_id = service.issue("svc").state.id
        self._interleave(monkeypatch, "revoke", lambda: service.soft_delete(key_id))

        with pytest.raises(NotFoundError):
            service.revoke(key_id)

        stored = store.get(key_id, include_deleted=True)
        assert stored.deleted_at is not None
        assert stored.status == KeyStatus.ACTIVE

    def test_revoke_racing_revoke_returns_stored_state(self, service, store, monkeypatch):
        key_id = service.issue("svc").state.id
        winner = {}
        self._interleave(monkeypatch, "revoke", lambda: winner.setdefault("state", service.revoke(key_id)))

        loser = service.revoke(key_id)

        assert loser.status == KeyStatus.REVOKED
        assert loser.updated_at == winner["state"].updated_at

    def test_delete_keeps_concurrent_revoke(self, service, store, monkeypatch):
        key_id = service.issue("svc").state.id
        self._interleave(monkeypatch, "soft_delete", lambda: service.revoke(key_id))

        deleted = service.soft_delete(key_id)

        assert deleted.deleted_at is not None
        assert deleted.status == KeyStatus.REVOKED


class TestUsage:
    def test_usage_newest_first(self, service, store):
        key = service.issue("svc").state
        first = store.append_usage(_usage(key.id, "allowed"))
        second = store.append_usage(_usage(key.id, "insufficient_scope"))

        report = service.usage_for_key(key.id)
        assert report.total_requests == 2
        assert [r.id for r in report.records] == [second, first]
        assert report.records[0].metadata["result"] == "insufficient_scope"
        assert report.records[0].owner == "svc"

    def test_usage_of_deleted_key_still_readable(self, service, store):
        key = service.issue("svc").state
        store.append_usage(_usage(key.id))
        service.soft_delete(key.id)

        report = service.usage_for_key(key.id)
        assert report.total_requests == 1
        assert report.key_info.deleted_at is not None
        assert report.records[0].deleted_at is not None

    def test_unknown_key_gives_empty_report(self, service):
        report = service.usage_for_key(424_242)
        assert report.total_requests == 0
        assert report.key_info is None

    def test_unmatched_usage_has_no_key(self, store):
        record_id = store.append_usage(_usage(None, "invalid_key"))
        assert record_id > 0


class TestStoreFailures:
    def test_database_error_becomes_internal_error(self):
        class _BrokenSession:
            def __enter__(self):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))

            def __exit__(self, *exc):
                return False

        broken = SQLKeyStore(session_factory=_BrokenSession)
        with pytest.raises(InternalError) as exc_info:
            broken.list_keys()
        assert exc_info.value.code == "KG-DB-001"


class TestTimestampColumns:
    @pytest.mark.parametrize(
        "column",
        [
            ApiKeyRecord.__table__.c.expiration,
            ApiKeyRecord.__table__.c.created_at,
            ApiKeyRecord.__table__.c.updated_at,
            ApiKeyRecord.__table__.c.deleted_at,
            UsageRecord.__table__.c.timestamp,
        ],
        ids=lambda c: f"{c.table.name}.{c.name}",
    )
    def test_columns_are_timezone_aware(self, column):
        assert column.type.timezone is True

    def test_stored_timestamps_come_back_in_utc(self, service, store):
        key_id = service.issue("svc", expiration=datetime(2031, 1, 1, tzinfo=timezone.utc)).state.id
        service.soft_delete(key_id)
        stored = store.get(key_id, include_deleted=True)
        for value in (stored.expiration, stored.created_at, stored.updated_at, stored.deleted_at):
            assert value.utcoffset() == timedelta(0)
