from __future__ import annotations

import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect
from sqlalchemy.pool import StaticPool

from bookcatalog.models import Book

MIGRATION_PATH = (
    Path(__file__).resolve().parents[1] / "alembic" / "versions" / "3f1c9a7be2d4_create_books_table.py"
)


def _load_migration():
    spec = importlib.util.spec_from_file_location("create_books_table", MIGRATION_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    yield engine
    engine.dispose()


def _run(engine, step: str) -> None:
    migration = _load_migration()
    with engine.begin() as connection:
        context = MigrationContext.configure(connection)
        with Operations.context(context):
            getattr(migration, step)()


def test_upgrade_matches_model_table(engine):
    _run(engine, "upgrade")

    inspector = inspect(engine)
    columns = {column["name"] for column in inspector.get_columns("books")}
    indexes = {index["name"] for index in inspector.get_indexes("books")}
    uniques = {constraint["name"] for constraint in inspector.get_unique_constraints("books")}

    assert columns == {column.name for column in Book.__table__.columns}
    assert indexes == {"ix_books_title", "ix_books_author", "ix_books_genre", "ix_books_pages"}
    assert uniques == {"uq_books_title_author"}


def test_upgrade_is_skipped_when_table_exists(engine):
    _run(engine, "upgrade")
    _run(engine, "upgrade")

    assert "books" in inspect(engine).get_table_names()


def test_downgrade_drops_table(engine):
    _run(engine, "upgrade")
    _run(engine, "downgrade")

    assert "books" not in inspect(engine).get_table_names()
