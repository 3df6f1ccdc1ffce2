"""
Document QA Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Deterministic startup
- Explicit dependency initialization order
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .config import settings
from .core.errors import DocQAError, domain_exception_handler, unhandled_exception_handler
from .core.logging_config import configure_logging
from .db import create_schema
from .jobs.queue import ingestion_queue

from .api import (
    ask_routes,
    conversation_routes,
    document_routes,
    health_routes,
    queue_routes,
)
from .api.dependencies import build_pipeline


logger = logging.getLogger("docqa.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(start_workers: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Parameters
    ----------
    start_workers : bool
        Whether the startup hook creates the schema and starts the ingestion
        workers. Tests pass False and drive the queue themselves.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="docqa-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(DocQAError, domain_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(document_routes.router)
    app.include_router(ask_routes.router)
    app.include_router(conversation_routes.router)
    app.include_router(queue_routes.router)

    # --------------------------------------------------------------
    # Startup Hook
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup() -> None:
        """
        Fail-fast validation, schema creation and worker startup.
        """
        configure_logging()
        logger.info("Starting docqa-server")

        if not settings.jwt_secret.get_secret_value():
            raise RuntimeError("JWT_SECRET must be configured")

        if not start_workers:
            return

        if settings.db_auto_create:
            await create_schema()
            logger.info("Database schema verified")

        await ingestion_queue.recover()
        ingestion_queue.start(build_pipeline)

    # --------------------------------------------------------------
    # Shutdown Hook
    # --------------------------------------------------------------

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        """
        Stop the ingestion workers. Jobs still waiting in memory are dropped;
        their documents stay queued and are recovered at the next startup.
        """
        logger.info("Shutting down docqa-server")
        await ingestion_queue.stop()

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
