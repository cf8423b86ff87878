"""
Request / response models for the HTTP surface.

Request fields are optional at the schema level so that missing fields reach
the service layer and are reported with their specific messages (400), not
as generic schema failures.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from keygate.core.key_state import KeyState
from keygate.services.key_store import UsageRow


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class ApiKeyCreateRequest(BaseModel):
    owner: Optional[str] = Field(None, description="Credential holder")
    scopes: Optional[List[Any]] = Field(None, description='Capability strings, e.g. ["orders:read"]')
    expiration: Optional[datetime] = Field(None, description="Absolute expiry (ISO 8601). Omit for never.")


class ApiKeyUpdateRequest(BaseModel):
    status: Optional[str] = Field(None, description='Only "revoked" is accepted')


class ValidateRequest(BaseModel):
    api_key: Optional[str] = Field(None, alias="apiKey", description="The presented secret")
    scope: Optional[str] = Field(None, description="Required resource:action scope")
    service: Optional[str] = Field(None, description="Name of the calling service")

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ApiKeyInfo(BaseModel):
    id: int
    owner: str
    scopes: List[str]
    status: str
    expiration: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_state(cls, state: KeyState) -> "ApiKeyInfo":
        return cls(
            id=state.id,
            owner=state.owner,
            scopes=list(state.scopes),
            status=state.status.value,
            expiration=state.expiration,
            created_at=state.created_at,
            updated_at=state.updated_at,
        )


class ApiKeyCreatedResponse(BaseModel):
    id: int
    key: str = Field(..., description="Full API key. Shown ONCE, store it safely")
    owner: str
    scopes: List[str]
    expiration: Optional[datetime] = None
    status: str
    created_at: datetime


class ApiKeyRevokedResponse(BaseModel):
    id: int
    status: str
    updated_at: datetime


class ApiKeyDeletedResponse(BaseModel):
    id: int
    deleted_at: datetime


class ValidateResponse(BaseModel):
    allowed: bool
    metadata: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None


class UsageKeyInfo(BaseModel):
    owner: str
    status: str
    deleted_at: Optional[datetime] = None


class UsageRecordOut(BaseModel):
    id: int
    timestamp: datetime
    action: str
    endpoint: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = {}
    owner: Optional[str] = None
    status: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: UsageRow) -> "UsageRecordOut":
        return cls(
            id=row.id,
            timestamp=row.timestamp,
            action=row.action,
            endpoint=row.endpoint,
            ip=row.ip,
            user_agent=row.user_agent,
            metadata=row.metadata,
            owner=row.owner,
            status=row.status,
            deleted_at=row.deleted_at,
        )


class UsageResponse(BaseModel):
    keyId: int
    totalRequests: int
    keyInfo: Optional[UsageKeyInfo] = None
    records: List[UsageRecordOut]
