"""
Shared fixtures.

Settings are read at import time, so the environment is pinned here before
any keygate module is imported: a throwaway SQLite file, a cheap scrypt cost,
and stderr-only logging.
"""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="keygate-test-")

os.environ["KEYGATE_DATA_DIRECTORY"] = _TMP_DIR
os.environ["KEYGATE_DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'keygate.db')}"
os.environ["KEYGATE_SCRYPT_N"] = "1024"
os.environ["KEYGATE_LOG_TO_FILE"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from keygate.core.database import get_session_context, init_db
from keygate.core.errors.registry import error_registry


@pytest.fixture(scope="session", autouse=True)
def _database():
    error_registry.load()
    init_db()
    yield


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with get_session_context() as session:
        session.execute(text("DELETE FROM usage_records"))
        session.execute(text("DELETE FROM api_keys"))
        session.commit()


@pytest.fixture
def client():
    from keygate.main import create_app

    with TestClient(create_app(), raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def issue_key(client):
    """POST /api-keys and return the response body."""

    def _issue(owner="billing-service", scopes=None, expiration=None):
        body = {"owner": owner, "scopes": scopes if scopes is not None else ["orders:read"]}
        if expiration is not None:
            body["expiration"] = expiration
        response = client.post("/api-keys", json=body)
        assert response.status_code == 201, response.text
        return response.json()

    return _issue
