"""
POST /validate — decide whether a presented key may use a scope.

Denials are 200 responses with ``allowed: false``; only malformed input is
an error (400).
"""

from fastapi import APIRouter, Depends, Request

from keygate.dependencies import get_validation_engine
from keygate.models.schemas import ValidateRequest, ValidateResponse
from keygate.services.validation_engine import CallerContext, ValidationEngine

router = APIRouter()


@router.post("/validate", response_model=ValidateResponse, response_model_exclude_none=True)
def validate_api_key(
    body: ValidateRequest,
    request: Request,
    engine: ValidationEngine = Depends(get_validation_engine),
):
    caller = CallerContext(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        endpoint=request.url.path,
    )
    decision = engine.validate(body.api_key, body.scope, body.service, caller)
    return decision.to_response()
