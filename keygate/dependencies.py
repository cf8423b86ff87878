"""
FastAPI dependency providers.

The store is resolved once per process; services are cheap and built per
request. Tests replace ``get_key_store`` through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from keygate.config import settings
from keygate.services.key_service import KeyService
from keygate.services.key_store import KeyStore, SQLKeyStore
from keygate.services.usage_recorder import UsageRecorder
from keygate.services.validation_engine import ValidationEngine


@lru_cache(maxsize=1)
def get_key_store() -> KeyStore:
    return SQLKeyStore()


def get_key_service(store: KeyStore = Depends(get_key_store)) -> KeyService:
    return KeyService(store, kdf_params=settings.kdf_params())


def get_validation_engine(store: KeyStore = Depends(get_key_store)) -> ValidationEngine:
    return ValidationEngine(store, UsageRecorder(store), kdf_params=settings.kdf_params())
