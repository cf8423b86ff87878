"""
keygate client for downstream services.

``KeyGateClient`` calls ``POST /validate``; ``require_scope`` wraps it as a
FastAPI dependency that guards a route with a single scope:

    orders = APIRouter()

    @orders.get("/orders")
    async def list_orders(key=Depends(require_scope("orders:read", "order-service"))):
        return {"accessed_by": key["owner"]}

The presented key travels as ``Authorization: Bearer <key>``.

keygate answers non-200 statuses with a structured body,
``{"error": {"code": "KG-API-001", "title": ..., "message": ..., ...}}``,
rather than a bare ``{"error": "<message>"}`` string. ``KeyGateUnavailable``
carries that code as ``error_code`` when the body has one.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = os.environ.get("KEYGATE_URL", "http://localhost:3000")


class KeyGateUnavailable(Exception):
    """keygate could not be reached or answered with an unexpected status."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        error = response.json().get("error")
    except (ValueError, AttributeError):
        return None
    if isinstance(error, dict):
        return error.get("code")
    return None


@dataclass(frozen=True)
class ValidationResult:
    allowed: bool
    reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class KeyGateClient:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    def _get_http_client(self) -> httpx.AsyncClient:
        """Return the shared httpx.AsyncClient, creating on first use."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout, connect=5.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                transport=self._transport,
            )
        return self._http

    async def validate(self, api_key: str, scope: str, service: str) -> ValidationResult:
        client = self._get_http_client()
        try:
            response = await client.post(
                "/validate",
                json={"apiKey": api_key, "scope": scope, "service": service},
            )
        except httpx.RequestError as exc:
            logger.error("keygate_unreachable", extra={"error.kind": type(exc).__name__})
            raise KeyGateUnavailable(f"keygate request failed: {type(exc).__name__}") from exc

        if response.status_code != 200:
            code = _error_code(response)
            logger.error("keygate_bad_status", extra={"http.status_code": response.status_code, "error.code": code})
            raise KeyGateUnavailable(f"keygate returned status {response.status_code} ({code or 'no code'})", error_code=code)

        data = response.json()
        return ValidationResult(
            allowed=bool(data.get("allowed")),
            reason=data.get("reason"),
            metadata=data.get("metadata"),
        )

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header or not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):].strip() or None


def require_scope(scope: str, service: str, client: Optional[KeyGateClient] = None):
    """Build a FastAPI dependency that admits requests whose key holds *scope*.

    Returns the validation metadata (keyId, owner, scopes, service, validatedAt).
    401 when no bearer key is presented, 403 when keygate denies it, 503 when
    keygate is unreachable.
    """
    keygate = client or KeyGateClient()

    async def _dependency(request: Request) -> Dict[str, Any]:
        api_key = _bearer_token(request)
        if api_key is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing or invalid Authorization header. Use: Authorization: Bearer <api-key>",
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            result = await keygate.validate(api_key, scope, service)
        except KeyGateUnavailable:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication service is currently unavailable.",
            )

        if not result.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "Access denied", "reason": result.reason},
            )

        request.state.key_validation = result.metadata
        return result.metadata or {}

    return _dependency
