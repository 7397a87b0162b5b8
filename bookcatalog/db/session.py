from __future__ import annotations

import time
from collections.abc import Generator
from typing import Any

from fastapi import Request
from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bookcatalog.core.errors import StoreError
from bookcatalog.core.settings import AppSettings
from bookcatalog.models import Base


def build_engine(settings: AppSettings) -> Engine:
    """Create an engine whose pool and driver calls are bounded by ``DB_TIMEOUT_SECONDS``."""
    url = make_url(settings.database_url)
    options: dict[str, Any] = {"future": True, "echo": False}

    if url.get_backend_name() == "sqlite":
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.db_timeout_seconds,
        }
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
        options["pool_size"] = 10
        options["pool_timeout"] = settings.db_timeout_seconds
        options["connect_args"] = {"connect_timeout": int(settings.db_timeout_seconds)}

    return create_engine(url, **options)


class Database:
    """Explicit handle on the relational store: one engine plus its session factory."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )
        self.available = False

    def ping(self) -> None:
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    def connect(self, retries: int, delay_seconds: float) -> bool:
        """Try to reach the store ``retries`` times, sleeping ``delay_seconds`` between attempts."""
        for attempt in range(1, retries + 1):
            try:
                self.ping()
            except SQLAlchemyError as exc:
                logger.error(
                    "Database connection attempt {}/{} failed: {}",
                    attempt,
                    retries,
                    exc,
                )
                if attempt < retries:
                    time.sleep(delay_seconds)
                continue
            logger.info("Database connection established")
            self.available = True
            return True

        logger.warning("Database unreachable after {} attempts; serving in degraded mode", retries)
        self.available = False
        return False

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
        self.available = False


def init_database(settings: AppSettings) -> Database:
    """Build the store handle for the process; failure to connect leaves it unavailable."""
    database = Database(build_engine(settings))
    if database.connect(settings.db_connect_retries, settings.db_connect_retry_delay_seconds):
        try:
            database.create_schema()
        except SQLAlchemyError as exc:
            logger.error("Unable to create database schema: {}", exc)
            database.available = False
    return database


def get_session(request: Request) -> Generator[Session, None, None]:
    """Yield a database session for request-scoped operations."""
    database: Database | None = getattr(request.app.state, "database", None)
    if database is None or not database.available:
        raise StoreError("Database connection is not available")

    session: Session = database.session_factory()
    try:
        yield session
    finally:
        session.close()
