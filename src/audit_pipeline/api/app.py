"""
FastAPI Application Setup.

Application factory for the audit pipeline REST API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from audit_pipeline import __version__
from audit_pipeline.api.middleware.logging import RequestLoggingMiddleware
from audit_pipeline.api.routes import audit, health
from audit_pipeline.config import AuditSettings, configure_logging
from audit_pipeline.core.clock import Clock
from audit_pipeline.core.exceptions import (
    AuditPipelineError,
    EventValidationError,
)
from audit_pipeline.services import AuditServices
from audit_pipeline.store.base import EventStore

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/v1/audit/stream"


def _status_for(exc: AuditPipelineError) -> int:
    if isinstance(exc, EventValidationError):
        return 400
    return 500


def create_app(
    settings: AuditSettings | None = None,
    store: EventStore | None = None,
    clock: Clock | None = None,
    title: str = "Audit Pipeline API",
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Pipeline settings (default: from environment)
        store: Event store to use (default: SQLite at settings.db_path)
        clock: Shared time source
        title: Application title for OpenAPI docs

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or AuditSettings.from_env()
    configure_logging(settings.log_level)

    services = AuditServices.build(settings, store=store, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(f"Audit Pipeline API starting up, version {__version__}")
        yield
        logger.info("Audit Pipeline API shutting down...")
        services.close()

    app = FastAPI(
        title=title,
        description="Ingestion, analytics, retention and export of audit events",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(RequestLoggingMiddleware, skip_paths={"/health", STREAM_PATH})

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )
    app.include_router(
        audit.router,
        prefix="/api/v1/audit",
        tags=["Audit"],
    )

    @app.exception_handler(AuditPipelineError)
    async def pipeline_exception_handler(request: Request, exc: AuditPipelineError) -> JSONResponse:
        """Map domain errors to the standard error body."""
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "type": exc.__class__.__name__,
                    "message": exc.message,
                    "detail": exc.details or None,
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "type": "internal_error",
                    "message": "An unexpected error occurred",
                    "detail": str(exc) if logger.isEnabledFor(logging.DEBUG) else None,
                }
            },
        )

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, object]:
        """Root endpoint with API information."""
        return {
            "name": "Audit Pipeline API",
            "version": __version__,
            "status": "operational",
            "docs": "/docs",
            "health": "/health",
        }

    return app
