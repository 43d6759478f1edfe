"""Shared test fixtures and configuration for pytest."""

import os
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
import pytest_asyncio

from workflow_store.clock import ManualClock, use_clock
from workflow_store.config import load_settings
from workflow_store.db import Database
from workflow_store.migrations import MigrationRunner
from workflow_store.repositories import Repositories

POSTGRES_URL_ENV = "WORKFLOW_TEST_POSTGRES_URL"


@pytest.fixture
def clock() -> Generator[ManualClock]:
    """Deterministic process clock: every read is one second after the previous one."""
    manual = ManualClock()
    with use_clock(manual):
        yield manual


@pytest.fixture
def sqlite_path(tmp_path: Path) -> str:
    return str(tmp_path / "store.db")


@pytest_asyncio.fixture
async def database(sqlite_path: str) -> AsyncGenerator[Database]:
    """File-backed SQLite database with all migrations applied."""
    db = Database(load_settings(type="sqlite", path=sqlite_path))
    await MigrationRunner(db).migrate_up()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def unmigrated_database(sqlite_path: str) -> AsyncGenerator[Database]:
    db = Database(load_settings(type="sqlite", path=sqlite_path))
    yield db
    await db.close()


@pytest.fixture
def repos(database: Database) -> Repositories:
    return Repositories.for_database(database)


@pytest_asyncio.fixture
async def postgres_database() -> AsyncGenerator[Database]:
    """Migrated Postgres database; skipped unless WORKFLOW_TEST_POSTGRES_URL is set."""
    url = os.environ.get(POSTGRES_URL_ENV)
    if not url:
        pytest.skip(f"{POSTGRES_URL_ENV} not set")
    db = Database(load_settings(type="postgres", path=url))
    runner = MigrationRunner(db)
    await runner.migrate_up()
    yield db
    while await runner.rollback_one() is not None:
        pass
    await db.close()
