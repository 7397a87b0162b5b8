from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from loguru import logger

from bookcatalog.core.errors import register_exception_handlers
from bookcatalog.core.logging_setup import configure_logging
from bookcatalog.core.settings import AppSettings, get_app_settings
from bookcatalog.db.session import Database, init_database
from bookcatalog.middleware import build_middleware
from bookcatalog.routers.books import router as books_router
from bookcatalog.routers.health import router as health_router


def create_app(settings: Optional[AppSettings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the catalog application.

    When ``database`` is omitted the store is connected during startup from
    ``settings.database_url``; a failed connection leaves the app running in a
    degraded state so ``/health`` stays reachable.
    """
    settings = settings or get_app_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_database = app.state.database is None
        if owns_database:
            app.state.database = await asyncio.to_thread(init_database, settings)
        logger.info("Book catalog started (environment: {})", settings.environment)
        try:
            yield
        finally:
            if owns_database:
                app.state.database.dispose()
                app.state.database = None
            logger.info("Book catalog stopped")

    app = FastAPI(
        title="Book Catalog API",
        lifespan=lifespan,
        middleware=build_middleware(settings),
        docs_url=None if settings.environment == "production" else "/docs",
        redoc_url=None if settings.environment == "production" else "/redoc",
    )
    app.state.settings = settings
    app.state.database = database
    app.state.started_at = time.monotonic()

    register_exception_handlers(app, settings)
    app.include_router(books_router)
    app.include_router(health_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_app_settings()
    uvicorn.run("bookcatalog.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
