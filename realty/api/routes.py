"""FastAPI application for the listing backend.

This module provides:
- The application factory and lifespan that wires the cache, the document
  store and the domain services together
- Health check endpoints
- Mapping of domain errors to HTTP responses
- CORS configuration

Startup fails if Redis cannot be reached. Once running, cache failures
only ever degrade requests to document store reads.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from realty import __version__
from realty.api.admin import router as admin_router
from realty.api.health import (
    ServiceStatus,
    create_health_service,
    get_health_service,
    reset_health_service,
    set_health_service,
)
from realty.cache.client import KeyValueClient
from realty.cache.service import ListingCacheService
from realty.cache.warming import StoreCacheWarmer
from realty.config import Settings, settings as default_settings
from realty.errors import RealtyError
from realty.logging_config import configure_logging
from realty.services import (
    FavoriteService,
    PropertyService,
    RecommendationService,
    UserService,
)
from realty.store.base import DocumentStore
from realty.store.sqlite import SQLiteDocumentStore

logger = structlog.get_logger(__name__)


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    error: str = Field(..., description="Error message")
    error_type: str = Field(..., description="Exception class name")
    details: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Application Setup
# ============================================================================


def _build_lifespan(
    config: Settings,
    client: KeyValueClient | None,
    store: DocumentStore | None,
):
    """Build the lifespan handler.

    Components passed in are used as given; anything missing is created
    from settings and owned (closed) by the lifespan.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("application_starting", version=app.version)

        kv_client = client or KeyValueClient(
            config.REDIS_URL,
            socket_timeout=config.REDIS_SOCKET_TIMEOUT,
            connect_attempts=config.REDIS_CONNECT_ATTEMPTS,
        )
        # Fatal: raises CacheConnectionError and aborts startup
        await kv_client.connect()

        owned_store: SQLiteDocumentStore | None = None
        document_store = store
        if document_store is None:
            owned_store = SQLiteDocumentStore(config.DOCUMENT_DB_PATH)
            await owned_store.initialize()
            document_store = owned_store

        cache = ListingCacheService(
            kv_client,
            warmer=StoreCacheWarmer(document_store, popular_limit=config.WARM_POPULAR_LIMIT),
        )
        properties = PropertyService(document_store, cache)

        app.state.cache = cache
        app.state.store = document_store
        app.state.properties = properties
        app.state.favorites = FavoriteService(document_store, cache, properties)
        app.state.recommendations = RecommendationService(document_store, cache, properties)
        app.state.users = UserService(document_store, cache)

        set_health_service(
            create_health_service(cache=cache, store=document_store, version=app.version)
        )

        try:
            yield
        finally:
            logger.info("application_shutting_down")
            reset_health_service()
            await kv_client.disconnect()
            if owned_store is not None:
                await owned_store.close()

    return lifespan


OPENAPI_TAGS = [
    {
        "name": "Cache",
        "description": "Cache health, statistics and warming.",
    },
    {
        "name": "Health",
        "description": "Health check endpoints for monitoring service status and readiness. "
        "Compatible with Kubernetes liveness and readiness probes.",
    },
]


def create_app(
    config: Settings | None = None,
    *,
    client: KeyValueClient | None = None,
    store: DocumentStore | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Settings; defaults to the process-wide settings.
        client: Key-value client to use instead of one built from
            REDIS_URL. It is connected during startup if it is not already.
        store: Initialized document store to use instead of the SQLite
            database at DOCUMENT_DB_PATH.
        cors_origins: Allowed CORS origins.

    Returns:
        Configured FastAPI application.
    """
    config = config or default_settings
    configure_logging(config.LOG_LEVEL, config.LOG_FORMAT)

    app = FastAPI(
        title="Realty Listing API",
        version=__version__,
        lifespan=_build_lifespan(config, client, store),
        openapi_tags=OPENAPI_TAGS,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RealtyError)
    async def realty_error_handler(
        request: Request, exc: RealtyError  # noqa: ARG001
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed", **exc.to_dict())
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.message,
                error_type=exc.__class__.__name__,
                details=exc.details,
            ).model_dump(),
        )

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    """Register all routes on the application."""
    app.include_router(admin_router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        """Basic liveness check."""
        health_service = get_health_service()
        if health_service:
            return await health_service.liveness()
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}

    @app.get("/health/live", tags=["Health"])
    async def liveness() -> dict[str, Any]:
        """Kubernetes-style liveness probe; alias for /health."""
        return await health()

    @app.get("/health/ready", tags=["Health"])
    async def readiness() -> JSONResponse:
        """Readiness check of the cache and the document store.

        Returns 503 when a required component is down. A cache outage alone
        reports "degraded" with 200.
        """
        health_service = get_health_service()
        if health_service is None:
            return JSONResponse(
                content={"status": ServiceStatus.NOT_READY.value, "checks": {}},
                status_code=503,
            )
        result = await health_service.readiness()
        status_code = 503 if result.status == ServiceStatus.NOT_READY else 200
        return JSONResponse(content=result.to_dict(), status_code=status_code)


# ============================================================================
# Default Application Instance
# ============================================================================


# Served with: uvicorn realty.api.routes:app
app = create_app()
