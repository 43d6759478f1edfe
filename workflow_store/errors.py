"""Error types and helpers for the workflow store."""

from __future__ import annotations

import re


class StoreError(Exception):
    """Base class for every error raised by the store.

    ``category`` is a stable tag callers can branch on without string matching.
    """

    category = "store"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(StoreError, ValueError):
    """A value object or enum literal failed validation."""

    category = "validation"


class EmptyIDError(ValidationError):
    """Raised when an identifier is the empty string."""


class InvalidIDError(ValidationError):
    """Raised when an identifier does not match the ID grammar."""


class InvalidChannelError(ValidationError):
    pass


class InvalidMessageRoleError(ValidationError):
    pass


class InvalidTaskStatusError(ValidationError):
    pass


class InvalidLogLevelError(ValidationError):
    pass


class InvalidCronExpressionError(ValidationError):
    pass


class InvalidVersionError(ValidationError):
    pass


class InvalidTransitionError(ValidationError):
    """Raised when a task is moved along an edge its state machine does not have."""


# =============================================================================
# Storage
# =============================================================================


class NotFoundError(StoreError, LookupError):
    """Raised when the requested row does not exist."""

    category = "not_found"

    def __init__(self, entity: str, key: str) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class ConflictError(StoreError):
    """Raised when a write violates a uniqueness constraint."""

    category = "conflict"


class BackendError(StoreError):
    """Any other storage failure (connection, driver, constraint, I/O)."""

    category = "backend"


class SchemaNotInitializedError(BackendError):
    """Raised when the database schema/migrations have not been applied."""


class MigrationError(BackendError):
    """Raised when migrations cannot be discovered or applied."""


class DeadlineExceededError(StoreError, TimeoutError):
    """Raised when an operation outlives the configured operation timeout."""

    category = "deadline_exceeded"


class ConfigError(StoreError):
    """Invalid or missing configuration."""

    category = "config"


# =============================================================================
# Driver exception classification
# =============================================================================

_PG_MISSING_RELATION_RE = re.compile(r'relation "(?P<table>[^"]+)" does not exist', re.IGNORECASE)
_SQLITE_MISSING_TABLE_RE = re.compile(r"no such table:\s*(?P<table>[A-Za-z0-9_]+)", re.IGNORECASE)
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed:\s*(?P<columns>[A-Za-z0-9_., ]+)", re.IGNORECASE)
_PG_UNIQUE_RE = re.compile(
    r'duplicate key value violates unique constraint "(?P<constraint>[^"]+)"', re.IGNORECASE
)


def _unwrap_exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def missing_table_name(exc: BaseException) -> str | None:
    """Best-effort extraction of the missing table name from a DB exception."""
    for e in _unwrap_exception_chain(exc):
        message = str(e)
        match = _PG_MISSING_RELATION_RE.search(message) or _SQLITE_MISSING_TABLE_RE.search(message)
        if match:
            return match.group("table")
    return None


def is_schema_missing_error(exc: BaseException) -> bool:
    """Return True if the exception looks like a missing-table / missing-schema error."""
    name = missing_table_name(exc)
    if name:
        return True

    # Fallback for drivers that don't format errors consistently.
    for e in _unwrap_exception_chain(exc):
        message = str(e).lower()
        if "undefinedtableerror" in message:
            return True
        if "does not exist" in message and "relation" in message:
            return True
    return False


def schema_not_initialized_message(exc: BaseException) -> str:
    table = missing_table_name(exc)
    table_hint = f" (missing table `{table}`)" if table else ""

    lines: list[str] = [
        f"Database schema is not initialized{table_hint}.",
        "Run: `workflow-store migrate up`",
        "Or inspect with: `workflow-store migrate status`",
    ]
    return "\n".join(lines)


def unique_violation_target(exc: BaseException) -> str | None:
    """Return the violated columns/constraint name if the exception is a unique violation."""
    for e in _unwrap_exception_chain(exc):
        message = str(e)
        match = _SQLITE_UNIQUE_RE.search(message)
        if match:
            return match.group("columns").strip()
        match = _PG_UNIQUE_RE.search(message)
        if match:
            return match.group("constraint")
        if type(e).__name__ == "UniqueViolationError":
            return getattr(e, "constraint_name", None) or "unique"
    return None


def is_unique_violation(exc: BaseException) -> bool:
    """Return True if the exception is a uniqueness (or primary key) violation."""
    return unique_violation_target(exc) is not None
