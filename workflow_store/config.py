"""Configuration settings for the workflow store."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator
from pydantic_settings import BaseSettings

from .errors import ConfigError

SUPPORTED_TYPES = ("sqlite", "postgres")

# Migrations shipped with the package
DEFAULT_MIGRATIONS_PATH = Path(__file__).with_name("migrations")

# camelCase keys as written in config files -> settings field names
_MAPPING_KEYS = {
    "type": "type",
    "path": "path",
    "migrationsPath": "migrations_path",
    "maxOpenConns": "max_open_conns",
    "maxIdleConns": "max_idle_conns",
    "connMaxLifetime": "conn_max_lifetime",
    "operationTimeout": "operation_timeout",
}

_DURATION_PART_RE = re.compile(r"(?P<amount>[0-9]+(?:\.[0-9]+)?)(?P<unit>ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> timedelta | None:
    """Parse compact durations such as ``5m``, ``90s`` or ``1h30m``; None if not in that form."""
    text = value.strip()
    if not text:
        return None
    pos = 0
    seconds = 0.0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != pos:
            return None
        seconds += float(match.group("amount")) * _DURATION_UNITS[match.group("unit")]
        pos = match.end()
    if pos != len(text):
        return None
    return timedelta(seconds=seconds)


class DatabaseSettings(BaseSettings):
    """Database settings loaded from environment variables (``WORKFLOW_DB_*``)."""

    # Backend: "sqlite" or "postgres"
    type: str = ""
    # SQLite file path (or ":memory:") / Postgres connection URL
    path: str = ""
    migrations_path: Path = DEFAULT_MIGRATIONS_PATH

    # Connection pool
    max_open_conns: int = 25
    max_idle_conns: int = 25
    conn_max_lifetime: timedelta = timedelta(minutes=5)

    # Per-operation deadline (seconds); None disables it
    operation_timeout: float | None = None

    class Config:
        env_prefix = "WORKFLOW_DB_"
        env_file = ".env"
        extra = "ignore"

    @field_validator("conn_max_lifetime", mode="before")
    @classmethod
    def _compact_duration(cls, value: Any) -> Any:
        if isinstance(value, str):
            parsed = parse_duration(value)
            if parsed is not None:
                return parsed
        return value

    def validate_settings(self) -> DatabaseSettings:
        """Check the combination of values; raises ConfigError."""
        if not self.type:
            raise ConfigError("database type is required")
        if not self.path:
            raise ConfigError("database path is required")
        if self.type not in SUPPORTED_TYPES:
            raise ConfigError(
                f"unsupported database type: {self.type}, must be 'sqlite' or 'postgres'"
            )
        if self.type == "postgres" and "://" not in self.path:
            raise ConfigError("postgres path must be a connection URL (postgres://...)")
        if self.max_open_conns <= 0:
            raise ConfigError("max_open_conns must be positive")
        if self.max_idle_conns < 0:
            raise ConfigError("max_idle_conns cannot be negative")
        if self.operation_timeout is not None and self.operation_timeout <= 0:
            raise ConfigError("operation_timeout must be positive")
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.type == "sqlite"

    @property
    def is_postgres(self) -> bool:
        return self.type == "postgres"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DatabaseSettings:
        """Build validated settings from a config-file section.

        Accepts the camelCase keys (``maxOpenConns``) as well as field names.
        ``connMaxLifetime`` may be a compact duration string like ``5m``.
        """
        values: dict[str, Any] = {}
        for key, value in data.items():
            field_name = _MAPPING_KEYS.get(key, key)
            if field_name not in cls.model_fields:
                raise ConfigError(f"unknown database option: {key}")
            values[field_name] = value

        return load_settings(**values)


def load_settings(**overrides: Any) -> DatabaseSettings:
    """Load settings from the environment, apply ``overrides`` and validate."""
    try:
        settings = DatabaseSettings(**overrides)
    except PydanticValidationError as exc:
        raise ConfigError(f"invalid database configuration: {exc}") from exc
    return settings.validate_settings()
