"""
FastAPI exception handlers.

Every error response is ``{"error": {code, title, message, retryable,
user_action_required, remediation}}`` built from the registry entry. Caller
errors (4xx) carry the raised public message; 5xx bodies carry only the
registry's generic message.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from keygate.core.errors import InternalError, KeyGateError
from keygate.core.errors.registry import error_registry

logger = logging.getLogger(__name__)

INVALID_BODY_CODE = "KG-API-004"


async def keygate_error_handler(request: Request, exc: KeyGateError) -> JSONResponse:
    """Convert KeyGateError into its registry-defined JSON response."""
    if exc.code not in error_registry:
        logger.error("unregistered_error_code", extra={"error.code": exc.code, "error.message": exc.detail})
    entry = error_registry.resolve(exc.code)

    logger.log(
        entry.log_level,
        entry.title,
        extra={
            "error.code": entry.code,
            "error.kind": type(exc).__name__,
            "error.message": exc.detail,
            "error.retryable": entry.retryable,
            "http.method": request.method,
            "http.path": request.url.path,
            **{f"error.ctx.{k}": v for k, v in exc.context.items()},
        },
    )
    return JSONResponse(status_code=entry.http_status, content=entry.body(exc.public_message))


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer unparseable bodies and mistyped fields with a 400 instead of FastAPI's 422."""
    fields = [".".join(str(part) for part in err.get("loc", ()) if part != "body") for err in exc.errors()]
    fields = [f for f in fields if f]
    message = f"Invalid request: {', '.join(fields)}" if fields else "Invalid request body"
    return await keygate_error_handler(
        request,
        KeyGateError(INVALID_BODY_CODE, detail=message, public_message=message),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort for exceptions nothing else handled: an opaque KG-SYS-001."""
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={"http.method": request.method, "http.path": request.url.path, "error.kind": type(exc).__name__},
    )
    return await keygate_error_handler(request, InternalError(detail=type(exc).__name__))
