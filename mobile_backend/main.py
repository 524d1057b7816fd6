"""
Mobile Backend - Main Application
=================================

FastAPI application serving the edge functions under ``/functions/v1``
with health checks and error handlers.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import newrelic.agent

from mobile_backend import __version__
from mobile_backend.config import settings

# Configure logging for the application (root logger defaults to WARNING)
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
from fastapi import FastAPI

from mobile_backend.api.v1 import account, webhooks
from mobile_backend.core.errors import setup_exception_handlers
from mobile_backend.db.session import close_db, init_db

logger = logging.getLogger(__name__)


# =============================================================================
# New Relic Transaction Enrichment Middleware (Raw ASGI)
# =============================================================================

class NewRelicTransactionMiddleware:
    """
    Raw ASGI middleware that tags every New Relic transaction with the
    function route, response status and latency.

    Raw ASGI keeps the handler in the same task, so database spans stay
    attached to the transaction.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            txn = newrelic.agent.current_transaction()
            if txn:
                route = scope.get("route")
                newrelic.agent.add_custom_attributes([
                    ("http.method", scope.get("method", "")),
                    ("http.route", route.path if route else scope.get("path", "unknown")),
                    ("http.status_code", status_code),
                    ("http.duration_ms", round((time.perf_counter() - start) * 1000, 2)),
                    ("environment", settings.ENVIRONMENT),
                ])


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Warm the database pool on startup and release it on shutdown."""
    logger.info("Starting mobile backend (%s)", settings.ENVIRONMENT)
    try:
        await init_db()
    except Exception as e:
        # Keep serving: health checks and non-DB paths still work
        logger.warning("Database connection failed: %s", e)

    yield

    logger.info("Shutting down mobile backend")
    await close_db()


# Create FastAPI application
app = FastAPI(
    title="Mobile Backend",
    description="""
## Edge functions for the mobile subscription app

- **revenuecat-webhook**: mirrors RevenueCat entitlement state into `user_entitlements`
- **delete-user**: self-service account deletion
- **exchange-apple-token**: stores a Sign in with Apple refresh token
    """,
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

# New Relic transaction enrichment (adds custom attrs to every transaction)
app.add_middleware(NewRelicTransactionMiddleware)

# Setup exception handlers
setup_exception_handlers(app)


# =============================================================================
# Health Check Endpoints
# =============================================================================

@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/", tags=["Health"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "Mobile Backend",
        "version": __version__,
        "functions": [
            "/functions/v1/revenuecat-webhook",
            "/functions/v1/delete-user",
            "/functions/v1/exchange-apple-token",
        ],
    }


# =============================================================================
# Edge Function Routes
# =============================================================================

app.include_router(webhooks.router, prefix="/functions/v1", tags=["Webhooks"])
app.include_router(account.router, prefix="/functions/v1", tags=["Account"])
