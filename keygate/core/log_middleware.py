"""
Request id propagation and per-request access log.

Caller-supplied ``x-request-id`` / ``x-correlation-id`` values are reused only
when they are short header tokens; anything else is replaced with a fresh id
so arbitrary caller text never lands in the log stream.
"""
from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from keygate.core.structured_logging import correlation_id_var, request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"
CORRELATION_ID_HEADER = "x-correlation-id"

_ID_TOKEN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def inbound_id(value: Optional[str]) -> str:
    """Reuse *value* when it is a plain id token, otherwise mint one."""
    if value and _ID_TOKEN.match(value):
        return value
    return uuid.uuid4().hex


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Bind request/correlation ids for the request and log its outcome."""

    async def dispatch(self, request: Request, call_next) -> Response:
        ids = {
            REQUEST_ID_HEADER: (request_id_var, inbound_id(request.headers.get(REQUEST_ID_HEADER))),
            CORRELATION_ID_HEADER: (correlation_id_var, inbound_id(request.headers.get(CORRELATION_ID_HEADER))),
        }
        tokens = [(var, var.set(value)) for var, value in ids.values()]

        start = time.perf_counter()
        status_code: Optional[int] = None
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            self._log_completed(request, status_code, time.perf_counter() - start)
            for var, token in tokens:
                var.reset(token)

        for header, (_var, value) in ids.items():
            response.headers[header] = value
        return response

    @staticmethod
    def _log_completed(request: Request, status_code: Optional[int], elapsed: float) -> None:
        # no status means the app raised past every exception handler
        level = logging.WARNING if status_code is None or status_code >= 500 else logging.INFO
        logger.log(
            level,
            "request_completed",
            extra={
                "http.method": request.method,
                "http.path": request.url.path,
                "http.status_code": status_code,
                "duration_ms": round(elapsed * 1000, 2),
            },
        )
