"""
Versioned SQL migrations.

Scripts live under ``<path>/<dialect>/NNN_name.up.sql`` and
``NNN_name.down.sql``. Applied versions are recorded in ``schema_migrations``
together with the dialect that applied them, so a database migrated for one
backend is never driven with the other backend's scripts.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from ..clock import format_timestamp, utc_now
from ..config import SUPPORTED_TYPES
from ..db import Database
from ..errors import MigrationError

logger = logging.getLogger(__name__)

METADATA_TABLE = "schema_migrations"

_CREATE_METADATA_TABLE = f"""
CREATE TABLE IF NOT EXISTS {METADATA_TABLE} (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    dialect TEXT NOT NULL,
    applied_at TEXT NOT NULL
)
"""

_RECORD_MIGRATION = text(
    f"INSERT INTO {METADATA_TABLE} (version, name, dialect, applied_at) "
    "VALUES (:version, :name, :dialect, :applied_at)"
)
_FORGET_MIGRATION = text(f"DELETE FROM {METADATA_TABLE} WHERE version = :version")

_FILE_RE = re.compile(r"(?P<version>[0-9]+)_(?P<name>[A-Za-z0-9_-]+)\.(?P<direction>up|down)\.sql")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"--[^\n]*")


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    up_path: Path
    down_path: Path | None = None

    @property
    def label(self) -> str:
        return f"{self.version:03d}_{self.name}"

    def up_statements(self) -> list[str]:
        return split_statements(self.up_path.read_text(encoding="utf-8"))

    def down_statements(self) -> list[str]:
        if self.down_path is None:
            raise MigrationError(f"migration {self.label} has no down script")
        return split_statements(self.down_path.read_text(encoding="utf-8"))


@dataclass(frozen=True)
class MigrationStatus:
    version: int
    name: str
    applied: bool
    applied_at: str | None = None


def split_statements(script: str) -> list[str]:
    """Strip SQL comments and split a script into single statements on ``;``."""
    script = _BLOCK_COMMENT_RE.sub("", script)
    script = _LINE_COMMENT_RE.sub("", script)
    return [stmt.strip() for stmt in script.split(";") if stmt.strip()]


def discover_migrations(directory: Path) -> list[Migration]:
    """Pair up/down scripts found in ``directory``, ordered by version."""
    ups: dict[int, tuple[str, Path]] = {}
    downs: dict[int, Path] = {}
    for path in sorted(directory.iterdir()):
        match = _FILE_RE.fullmatch(path.name)
        if match is None or not path.is_file():
            continue
        version = int(match.group("version"))
        target = ups if match.group("direction") == "up" else downs
        if version in target:
            raise MigrationError(f"duplicate migration version {version} in {directory}")
        if match.group("direction") == "up":
            ups[version] = (match.group("name"), path)
        else:
            downs[version] = path

    orphans = sorted(set(downs) - set(ups))
    if orphans:
        raise MigrationError(f"down scripts without up scripts in {directory}: {orphans}")

    return [
        Migration(version=version, name=name, up_path=path, down_path=downs.get(version))
        for version, (name, path) in sorted(ups.items())
    ]


def resolve_directory(root: Path, dialect: str) -> Path:
    """The dialect subdirectory of ``root``; refuses another dialect's directory."""
    if root.name in SUPPORTED_TYPES:
        if root.name != dialect:
            raise MigrationError(
                f"migrations path {root} holds {root.name} scripts, database is {dialect}"
            )
        directory = root
    else:
        directory = root / dialect
    if not directory.is_dir():
        raise MigrationError(f"no {dialect} migrations directory at {directory}")
    return directory


class MigrationRunner:
    """Applies and rolls back versioned SQL scripts against a Database."""

    def __init__(self, database: Database, migrations_path: Path | str | None = None) -> None:
        self.database = database
        root = Path(migrations_path) if migrations_path else Path(database.settings.migrations_path)
        self.directory = resolve_directory(root, database.dialect)

    def migrations(self) -> list[Migration]:
        return discover_migrations(self.directory)

    async def _prepare(self, conn: AsyncConnection) -> dict[int, tuple[str, str]]:
        """Create the metadata table if needed; return applied version -> (name, applied_at)."""
        await conn.exec_driver_sql(_CREATE_METADATA_TABLE)
        rows = (
            await conn.exec_driver_sql(
                f"SELECT version, name, dialect, applied_at FROM {METADATA_TABLE} ORDER BY version"
            )
        ).all()
        applied: dict[int, tuple[str, str]] = {}
        for version, name, dialect, applied_at in rows:
            if dialect != self.database.dialect:
                raise MigrationError(
                    f"database was migrated with {dialect} scripts, refusing to apply "
                    f"{self.database.dialect} migrations"
                )
            applied[int(version)] = (name, applied_at)
        return applied

    async def _applied(self) -> dict[int, tuple[str, str]]:
        try:
            async with self.database.engine.begin() as conn:
                return await self._prepare(conn)
        except SQLAlchemyError as exc:
            raise MigrationError(f"cannot read migration state: {exc}") from exc

    async def current_version(self) -> int | None:
        """Highest applied version, or None on a fresh database."""
        applied = await self._applied()
        return max(applied) if applied else None

    async def status(self) -> list[MigrationStatus]:
        applied = await self._applied()
        result: list[MigrationStatus] = []
        known: set[int] = set()
        for migration in self.migrations():
            known.add(migration.version)
            entry = applied.get(migration.version)
            result.append(
                MigrationStatus(
                    version=migration.version,
                    name=migration.name,
                    applied=entry is not None,
                    applied_at=entry[1] if entry else None,
                )
            )
        # Applied versions whose scripts are no longer on disk
        for version, (name, applied_at) in applied.items():
            if version not in known:
                result.append(MigrationStatus(version, name, True, applied_at))
        return sorted(result, key=lambda s: s.version)

    async def migrate_up(self) -> list[int]:
        """Apply every pending migration in version order.

        Returns the versions applied; an empty list means there was nothing to do.
        """
        applied = await self._applied()
        done: list[int] = []
        for migration in self.migrations():
            if migration.version in applied:
                continue
            statements = migration.up_statements()
            try:
                async with self.database.engine.begin() as conn:
                    for statement in statements:
                        await conn.exec_driver_sql(statement)
                    await conn.execute(
                        _RECORD_MIGRATION,
                        {
                            "version": migration.version,
                            "name": migration.name,
                            "dialect": self.database.dialect,
                            "applied_at": format_timestamp(utc_now()),
                        },
                    )
            except SQLAlchemyError as exc:
                raise MigrationError(f"migration {migration.label} failed: {exc}") from exc
            logger.info("applied migration %s (%s)", migration.label, self.database.dialect)
            done.append(migration.version)

        if not done:
            logger.info("no pending migrations (%s)", self.database.dialect)
        return done

    async def rollback_one(self) -> int | None:
        """Undo the most recently applied migration; None if nothing is applied."""
        applied = await self._applied()
        if not applied:
            logger.info("no migrations to roll back (%s)", self.database.dialect)
            return None

        version = max(applied)
        migration = next((m for m in self.migrations() if m.version == version), None)
        if migration is None:
            raise MigrationError(f"applied migration {version} has no scripts in {self.directory}")

        statements = migration.down_statements()
        try:
            async with self.database.engine.begin() as conn:
                for statement in statements:
                    await conn.exec_driver_sql(statement)
                await conn.execute(_FORGET_MIGRATION, {"version": version})
        except SQLAlchemyError as exc:
            raise MigrationError(f"rollback of {migration.label} failed: {exc}") from exc
        logger.info("rolled back migration %s (%s)", migration.label, self.database.dialect)
        return version
