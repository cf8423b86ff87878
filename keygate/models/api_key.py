"""
API Key + Usage Record Models
=============================

SQLModel tables for persistent key storage and the validation audit trail.
Keys are stored as salted scrypt verifiers; the raw key is shown once at
creation time and never persisted.

Usage records are append-only. Their ``api_key_id`` is NULL when the
presented secret matched no stored key.
"""

import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer
from sqlmodel import Field, SQLModel, Column, Text

from keygate.core.key_state import KeyState, KeyStatus, as_utc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiKeyRecord(SQLModel, table=True):
    """
    Persistent API key record.

    ``key_hash`` is scrypt(raw_key, salt) hex-encoded; ``scopes`` is a JSON
    array of ``resource:action`` strings. ``deleted_at`` marks soft deletion.
    """

    __tablename__ = "api_keys"

    id: Optional[int] = Field(default=None, primary_key=True)
    key_hash: str = Field(max_length=256)
    salt: str = Field(max_length=64)
    status: str = Field(default=KeyStatus.ACTIVE.value, max_length=16, index=True)
    expiration: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    deleted_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True, index=True)
    )
    scopes: str = Field(default="[]", sa_column=Column(Text, nullable=False, default="[]"))
    owner: str = Field(max_length=255, index=True)

    def to_state(self) -> KeyState:
        try:
            scopes = json.loads(self.scopes or "[]")
        except (json.JSONDecodeError, TypeError):
            scopes = []
        return KeyState(
            id=self.id,
            owner=self.owner,
            status=KeyStatus(self.status),
            scopes=tuple(scopes),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            expiration=as_utc(self.expiration),
            deleted_at=as_utc(self.deleted_at),
        )


class UsageRecord(SQLModel, table=True):
    """One row per validation attempt. Never updated, never deleted."""

    __tablename__ = "usage_records"

    id: Optional[int] = Field(default=None, primary_key=True)
    api_key_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=True, index=True),
    )
    timestamp: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    action: str = Field(max_length=32)
    endpoint: Optional[str] = Field(default=None, max_length=255)
    ip: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = Field(default=None, max_length=512)
    # "metadata" is reserved on declarative classes; keep the column name, rename the attribute
    metadata_json: str = Field(default="{}", sa_column=Column("metadata", Text, nullable=False, default="{}"))

    def metadata_dict(self) -> dict:
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}
