"""
Health check endpoints.

- GET /health       — cheap: process alive, plain "OK"
- GET /health/deep  — round-trips the database (bounded by a timeout)
"""
import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse, PlainTextResponse

from keygate.core import database
from keygate.core.structured_logging import APP_VERSION, SERVICE_NAME, get_uptime_s

logger = logging.getLogger(__name__)

router = APIRouter()

COMPONENT_TIMEOUT = 2.0  # seconds


@router.get("/health", response_class=PlainTextResponse)
async def health_check():
    """Cheap health check, no I/O."""
    return "OK"


@router.get("/health/deep")
async def deep_health_check():
    """Database round-trip with a bounded wait."""
    try:
        await asyncio.wait_for(asyncio.to_thread(database.ping), timeout=COMPONENT_TIMEOUT)
        db_status = "ok"
    except asyncio.TimeoutError:
        db_status = "timeout"
    except Exception as exc:
        logger.warning("health_database_failed", extra={"error.kind": type(exc).__name__})
        db_status = "error"

    healthy = db_status == "ok"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "service": SERVICE_NAME,
            "version": APP_VERSION,
            "uptime_s": round(get_uptime_s(), 1),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": {"database": db_status},
        },
    )
