"""Async database connection and transaction handling for the workflow store."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .config import DatabaseSettings
from .errors import (
    BackendError,
    ConflictError,
    DeadlineExceededError,
    SchemaNotInitializedError,
    StoreError,
    is_schema_missing_error,
    is_unique_violation,
    schema_not_initialized_message,
    unique_violation_target,
)

logger = logging.getLogger(__name__)

SQLITE_MEMORY = ":memory:"


# =============================================================================
# Engine construction
# =============================================================================


def build_async_url(settings: DatabaseSettings) -> URL:
    """SQLAlchemy async URL for the configured backend."""
    if settings.is_sqlite:
        if settings.path.startswith(("sqlite:", "sqlite+")):
            return make_url(settings.path).set(drivername="sqlite+aiosqlite")
        return URL.create("sqlite+aiosqlite", database=settings.path)

    # postgres://, postgresql:// and postgresql+<driver>:// all end up on asyncpg
    url = make_url(settings.path).set(drivername="postgresql+asyncpg")
    sslmode = url.query.get("sslmode")
    if sslmode is not None:
        # asyncpg spells libpq's sslmode as ssl
        url = url.difference_update_query(["sslmode"]).update_query_dict({"ssl": sslmode})
    return url


def engine_options(settings: DatabaseSettings) -> dict[str, Any]:
    """Pool configuration for create_async_engine."""
    if settings.is_sqlite and build_async_url(settings).database in (None, "", SQLITE_MEMORY):
        # One shared connection, otherwise every checkout sees a fresh empty database
        return {"poolclass": StaticPool}

    pool_size = max(1, min(settings.max_idle_conns, settings.max_open_conns))
    lifetime = settings.conn_max_lifetime.total_seconds()
    return {
        "pool_size": pool_size,
        "max_overflow": settings.max_open_conns - pool_size,
        "pool_recycle": max(1, math.ceil(lifetime)) if lifetime > 0 else -1,
        "pool_pre_ping": True,
    }


def _enable_sqlite_foreign_keys(dbapi_conn: Any, connection_record: Any) -> None:
    """SQLite needs foreign_keys switched on for every new connection."""
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


# =============================================================================
# Error translation
# =============================================================================


def translate_error(exc: BaseException, timeout: float | None = None) -> BaseException:
    """Map a driver/SQLAlchemy failure onto the store's error taxonomy.

    Store errors and unrelated exceptions are returned unchanged. A builtin
    TimeoutError counts as a missed deadline only when one was configured;
    otherwise it is a driver failure like any other OSError.
    """
    if isinstance(exc, StoreError):
        return exc
    if isinstance(exc, TimeoutError) and timeout is not None:
        return DeadlineExceededError(f"database operation exceeded its {timeout}s deadline")
    if not isinstance(exc, SQLAlchemyError | OSError):
        return exc

    if is_unique_violation(exc):
        return ConflictError(f"unique constraint violated: {unique_violation_target(exc)}")
    if is_schema_missing_error(exc):
        return SchemaNotInitializedError(schema_not_initialized_message(exc))
    return BackendError(f"database error: {exc}")


# =============================================================================
# Database
# =============================================================================


class Database:
    """Engine, session factory and transaction scope for one backend."""

    def __init__(self, settings: DatabaseSettings, *, echo: bool = False) -> None:
        self.settings = settings
        self.url = build_async_url(settings)
        self.engine: AsyncEngine = create_async_engine(
            self.url, echo=echo, **engine_options(settings)
        )
        if settings.is_sqlite:
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        self.operation_timeout = settings.operation_timeout

        logger.debug(
            "database configured",
            extra={"dialect": settings.type, "url": self.url.render_as_string(hide_password=True)},
        )

    @property
    def dialect(self) -> str:
        """``sqlite`` or ``postgres``."""
        return self.settings.type

    async def __aenter__(self) -> Database:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Dispose of the connection pool."""
        await self.engine.dispose()

    async def ping(self) -> None:
        """Round-trip a trivial query; raises BackendError if the backend is unreachable."""
        async with self.session() as session:
            await session.execute(text("SELECT 1"))

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Transactional scope: commit on success, rollback on failure.

        The connection goes back to the pool on every exit path, including
        task cancellation, which propagates unchanged.
        """
        async with self.session_factory() as session:
            try:
                async with asyncio.timeout(self.operation_timeout):
                    yield session
                    await session.commit()
            except Exception as exc:
                await session.rollback()
                translated = translate_error(exc, self.operation_timeout)
                if translated is exc:
                    raise
                logger.warning("database operation failed: %s", translated)
                raise translated from exc
