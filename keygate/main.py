from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from keygate.config import settings
from keygate.core.database import init_db, close_db
from keygate.core.errors import KeyGateError
from keygate.core.errors.middleware import (
    keygate_error_handler,
    request_validation_error_handler,
    unhandled_error_handler,
)
from keygate.core.errors.registry import error_registry
from keygate.core.log_middleware import CorrelationMiddleware
from keygate.core.structured_logging import APP_VERSION, setup_logging
from keygate.routers import api_keys, health, validate

# Initialize structured logging before any logger calls
setup_logging(log_dir=settings.log_dir, log_level=settings.log_level.upper(), to_file=settings.log_to_file)

logger = logging.getLogger(__name__)

API_TITLE = "keygate API"

API_DESCRIPTION = """
## keygate - API key issuance and validation

Issue opaque API keys scoped to `resource:action` capabilities, revoke or
soft-delete them, and validate presented keys from downstream services.
Every validation attempt is recorded for audit.

### Keys
The plaintext key is returned exactly once, by `POST /api-keys`. Only a
salted scrypt verifier is stored.
"""

TAGS_METADATA = [
    {"name": "health", "description": "Liveness and readiness checks."},
    {"name": "api-keys", "description": "Issue, list, revoke, and soft-delete API keys; read their usage history."},
    {"name": "validation", "description": "Allow/deny decisions for presented keys."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Starting keygate API v%s...", APP_VERSION)

    error_registry.load()
    init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down keygate API...")
    close_db()


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=APP_VERSION,
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
    )
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(KeyGateError, keygate_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health.router, tags=["health"])
    app.include_router(api_keys.router, prefix="/api-keys", tags=["api-keys"])
    app.include_router(validate.router, tags=["validation"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "keygate.main:app",
        host=settings.host,
        port=settings.port,
    )
