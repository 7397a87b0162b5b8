from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from bookcatalog.core.settings import AppSettings
from bookcatalog.db.session import Database
from bookcatalog.main import create_app
from bookcatalog.models import Base


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def settings() -> AppSettings:
    return AppSettings(
        environment="test",
        database_url="sqlite://",
        db_connect_retries=1,
        db_connect_retry_delay_seconds=0,
        rate_limit_enabled=False,
        log_level="WARNING",
    )


@pytest.fixture()
def database(engine) -> Database:
    database = Database(engine)
    assert database.connect(retries=1, delay_seconds=0)
    return database


@pytest.fixture()
def db_session(database: Database) -> Session:
    session = database.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def app(settings: AppSettings, database: Database):
    return create_app(settings=settings, database=database)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
