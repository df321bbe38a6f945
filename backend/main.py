"""
FastAPI application entry point for the Treniko subscription API.

Tenant identity is established upstream: the authentication layer verifies
the caller's token and sets request.state.tenant_context before these
middlewares run. Entitlement enforcement (read-only mode, client and
session limits) runs on every tenant request via EntitlementMiddleware.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from treniko import __version__
from treniko.api.routes import health
from treniko.api.routes import subscriptions
from treniko.entitlements.gate import EntitlementGate
from treniko.entitlements.middleware import EntitlementMiddleware

# Configure structured logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Treniko subscription API")

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.error(
            "DATABASE_URL is not set. Tenant endpoints will return 503 and "
            "entitlement checks will follow the read-error policy."
        )
        app.state.database_configured = False
    else:
        # Mask credentials for safe logging
        masked = database_url.split("@")[-1] if "@" in database_url else "(no @ found)"
        logger.info("DATABASE_URL configured", extra={"host_db": masked})
        app.state.database_configured = True

    yield

    # Shutdown
    logger.info("Shutting down Treniko subscription API")


async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    tenant_id = "unknown"
    if hasattr(request.state, "tenant_context"):
        tenant_id = request.state.tenant_context.tenant_id

    logger.error(
        "Unhandled exception",
        extra={
            "tenant_id": tenant_id,
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


def create_app(
    session_factory: Optional[Callable[[], Session]] = None,
    entitlement_gate: Optional[EntitlementGate] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        session_factory: Session factory for entitlement snapshot reads
            (defaults to the pooled application factory)
        entitlement_gate: Gate for the tenant-wide checks (defaults to
            read-only + client limit + session limit with the policy from
            ENTITLEMENT_READ_ERROR_POLICY)
    """
    app = FastAPI(
        title="Treniko Subscription API",
        description="Subscription lifecycle and plan entitlement enforcement",
        version=__version__,
        lifespan=lifespan
    )

    # Entitlement enforcement for tenant requests
    app.add_middleware(
        EntitlementMiddleware,
        session_factory=session_factory,
        gate=entitlement_gate,
    )

    # CORS middleware (configure for your frontend domain)
    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include health route (bypasses entitlement checks)
    app.include_router(health.router)

    # Include subscription management routes (writable in read-only mode)
    app.include_router(subscriptions.router)

    app.add_exception_handler(Exception, global_exception_handler)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
