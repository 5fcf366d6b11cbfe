"""Application factory and process lifecycle for the users service."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .api import create_app
from .config import Settings, load_settings
from .database import Database

logger = logging.getLogger("usersapi.application")


def _pool_lifespan(database: Database):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            logger.info("Closing database pool")
            database.close()

    return lifespan


def create_application(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
) -> FastAPI:
    """Create the ASGI application that owns the database pool.

    When ``database`` is omitted a new pool is opened from
    ``settings.database_url``. Either way the pool is disposed when the
    application shuts down.
    """

    if settings is None:
        settings = load_settings()
    if database is None:
        database = Database(settings.database_url)

    app = create_app(
        database=database,
        static_dir=settings.static_dir,
        lifespan=_pool_lifespan(database),
    )
    app.state.settings = settings
    return app


def serve(settings: Settings, database: Database) -> None:
    """Run uvicorn until SIGINT/SIGTERM, then drain within the grace period."""

    import uvicorn

    app = create_application(settings, database=database)
    logger.info("Server listening on %s:%s", settings.host, settings.port)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=settings.shutdown_grace_seconds,
    )
    logger.info("Server stopped")


__all__ = ["create_application", "serve"]
