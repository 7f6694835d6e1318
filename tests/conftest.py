"""
Shared pytest fixtures for seasarbatis tests.

This module provides:
- Metadata-cache cleanup for test isolation
- A file-backed SQLite engine with the test schema
- A ``JdbcManager`` wired to that engine and a temporary SQL-file root

Usage:
    def test_insert(jdbc):
        jdbc.insert(User(id=1, name="A"))
"""

from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.engine import Engine

from seasarbatis import JdbcManager, clear_metadata_cache, create_batis_engine

SCHEMA = [
    """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT,
        email_address TEXT,
        active BOOLEAN
    )
    """,
    """
    CREATE TABLE members (
        tenant_id INTEGER NOT NULL,
        id INTEGER NOT NULL,
        name TEXT,
        PRIMARY KEY (tenant_id, id)
    )
    """,
    """
    CREATE TABLE audit_log (
        id INTEGER PRIMARY KEY,
        message TEXT
    )
    """,
    """
    CREATE TABLE tokens (
        code TEXT PRIMARY KEY DEFAULT (lower(hex(randomblob(8)))),
        label TEXT
    )
    """,
]


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests that touch a database file as integration tests."""
    for item in items:
        fixtures = getattr(item, "fixturenames", ())
        if "engine" in fixtures or "jdbc" in fixtures:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_metadata_cache() -> Iterator[None]:
    """Resolve entity metadata from scratch in every test."""
    clear_metadata_cache()
    yield
    clear_metadata_cache()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    """SQLite database file with the test schema (WAL mode)."""
    eng = create_batis_engine(f"sqlite:///{tmp_path / 'batis.db'}")
    with eng.begin() as conn:
        for ddl in SCHEMA:
            conn.execute(text(ddl))
    yield eng
    eng.dispose()


@pytest.fixture
def sql_dir(tmp_path: Path) -> Path:
    """Root directory for SQL files used by a test."""
    path = tmp_path / "sql"
    path.mkdir()
    return path


@pytest.fixture
def jdbc(engine: Engine, sql_dir: Path) -> JdbcManager:
    return JdbcManager(engine, sql_file_root=sql_dir)


def count_rows(engine: Engine, table: str) -> int:
    with engine.connect() as conn:
        return conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one()


@pytest.fixture
def row_count(engine: Engine):
    """Callable returning the committed row count of a table."""
    return lambda table: count_rows(engine, table)
