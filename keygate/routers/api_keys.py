"""
API key management endpoints.

    POST   /api-keys            — issue a key (plaintext returned ONCE)
    GET    /api-keys            — list non-deleted keys, newest first
    PATCH  /api-keys/{id}       — revoke
    DELETE /api-keys/{id}       — soft delete
    GET    /api-keys/{id}/usage — audit trail, deleted keys included
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status

from keygate.dependencies import get_key_service
from keygate.models.schemas import (
    ApiKeyCreateRequest,
    ApiKeyCreatedResponse,
    ApiKeyDeletedResponse,
    ApiKeyInfo,
    ApiKeyRevokedResponse,
    ApiKeyUpdateRequest,
    UsageKeyInfo,
    UsageRecordOut,
    UsageResponse,
)
from keygate.services.key_service import KeyService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ApiKeyCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_api_key(body: ApiKeyCreateRequest, service: KeyService = Depends(get_key_service)):
    issued = service.issue(body.owner, body.scopes, body.expiration)
    state = issued.state
    return ApiKeyCreatedResponse(
        id=state.id,
        key=issued.secret,
        owner=state.owner,
        scopes=list(state.scopes),
        expiration=state.expiration,
        status=state.status.value,
        created_at=state.created_at,
    )


@router.get("", response_model=List[ApiKeyInfo])
def list_api_keys(service: KeyService = Depends(get_key_service)):
    return [ApiKeyInfo.from_state(s) for s in service.list_keys()]


@router.patch("/{key_id}", response_model=ApiKeyRevokedResponse)
def revoke_api_key(key_id: int, body: ApiKeyUpdateRequest, service: KeyService = Depends(get_key_service)):
    state = service.revoke(key_id, body.status)
    return ApiKeyRevokedResponse(id=state.id, status=state.status.value, updated_at=state.updated_at)


@router.delete("/{key_id}", response_model=ApiKeyDeletedResponse)
def delete_api_key(key_id: int, service: KeyService = Depends(get_key_service)):
    state = service.soft_delete(key_id)
    return ApiKeyDeletedResponse(id=state.id, deleted_at=state.deleted_at)


@router.get("/{key_id}/usage", response_model=UsageResponse)
def api_key_usage(key_id: int, service: KeyService = Depends(get_key_service)):
    report = service.usage_for_key(key_id)
    key_info = None
    if report.key_info is not None:
        key_info = UsageKeyInfo(
            owner=report.key_info.owner,
            status=report.key_info.status.value,
            deleted_at=report.key_info.deleted_at,
        )
    return UsageResponse(
        keyId=report.key_id,
        totalRequests=report.total_requests,
        keyInfo=key_info,
        records=[UsageRecordOut.from_row(r) for r in report.records],
    )
