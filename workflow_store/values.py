"""
Value objects for the workflow store.

Identifiers are frozen dataclasses sharing one validation rule; two ID kinds
holding the same text never compare equal. Closed literal sets are StrEnums
parsed explicitly through ``parse``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from functools import total_ordering
from typing import Any, Self, TypeVar
from uuid import uuid4

from .errors import (
    EmptyIDError,
    InvalidChannelError,
    InvalidIDError,
    InvalidLogLevelError,
    InvalidMessageRoleError,
    InvalidTaskStatusError,
    InvalidVersionError,
    ValidationError,
)

_ID_RE = re.compile(r"[A-Za-z0-9_-]+")
_VERSION_RE = re.compile(r"(?P<major>[0-9]+)\.(?P<minor>[0-9]+)\.(?P<patch>[0-9]+)")


def _loads_string(data: str | bytes, error: type[ValidationError], label: str) -> str:
    try:
        raw: Any = json.loads(data)
    except json.JSONDecodeError as exc:
        raise error(f"{label} is not valid JSON: {data!r}") from exc
    if not isinstance(raw, str):
        raise error(f"{label} must be a JSON string, got {type(raw).__name__}")
    return raw


# =============================================================================
# Identifiers
# =============================================================================


def validate_id(value: object) -> str:
    """Return ``value`` if it is a non-empty string of ``[A-Za-z0-9_-]``."""
    if not isinstance(value, str):
        raise InvalidIDError(f"invalid id: expected str, got {type(value).__name__}")
    if value == "":
        raise EmptyIDError("id cannot be empty")
    if not _ID_RE.fullmatch(value):
        raise InvalidIDError(f"invalid id: {value!r}")
    return value


@dataclass(frozen=True)
class Identifier:
    """Validated identifier. Subclasses are distinct nominal ID kinds."""

    value: str

    def __post_init__(self) -> None:
        validate_id(self.value)

    def __str__(self) -> str:
        return self.value

    @classmethod
    def generate(cls) -> Self:
        """Fresh random 128-bit identifier (UUID4 text, which satisfies the ID grammar)."""
        return cls(str(uuid4()))

    @classmethod
    def coerce(cls, value: Identifier | str) -> Self:
        """Accept either this ID kind or raw text; another ID kind is a type error."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Identifier):
            raise TypeError(f"expected {cls.__name__}, got {type(value).__name__}")
        return cls(value)

    def to_json(self) -> str:
        return json.dumps(self.value)

    @classmethod
    def from_json(cls, data: str | bytes) -> Self:
        return cls(_loads_string(data, InvalidIDError, cls.__name__))


class UserID(Identifier):
    """Identifier of a user."""


class SessionID(Identifier):
    """Identifier of a conversation session."""


class MessageID(Identifier):
    """Identifier of a message."""


class TaskID(Identifier):
    """Identifier of a skill execution task."""


class SkillID(Identifier):
    """Identifier of a registered skill."""


class ScheduleID(Identifier):
    """Identifier of a cron schedule."""


class LogID(Identifier):
    """Identifier of a log record."""


ID_KINDS: dict[str, type[Identifier]] = {
    "user": UserID,
    "session": SessionID,
    "message": MessageID,
    "task": TaskID,
    "skill": SkillID,
    "schedule": ScheduleID,
    "log": LogID,
}


def id_for_kind(kind: str, value: str) -> Identifier:
    """Build the ID kind named by ``kind`` (``user``, ``userid``, ``UserID``, ...)."""
    key = kind.lower().removesuffix("id")
    try:
        id_type = ID_KINDS[key]
    except KeyError:
        raise ValueError(f"unknown ID type: {kind}") from None
    return id_type(value)


# =============================================================================
# Closed literal sets
# =============================================================================

E = TypeVar("E", bound=StrEnum)


def _parse_literal(enum_type: type[E], raw: object, error: type[ValidationError], label: str) -> E:
    if isinstance(raw, enum_type):
        return raw
    if not isinstance(raw, str) or raw == "":
        raise error(f"{label} cannot be empty")
    try:
        return enum_type(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise error(f"invalid {label}: {raw!r} (expected one of: {allowed})") from None


class Channel(StrEnum):
    """Origin platform of a user identity."""

    TELEGRAM = "telegram"
    DISCORD = "discord"
    WEB = "web"

    @classmethod
    def parse(cls, raw: object) -> Channel:
        return _parse_literal(cls, raw, InvalidChannelError, "channel")

    @classmethod
    def from_json(cls, data: str | bytes) -> Channel:
        return cls.parse(_loads_string(data, InvalidChannelError, "channel"))

    def to_json(self) -> str:
        return json.dumps(self.value)

    @property
    def is_telegram(self) -> bool:
        return self is Channel.TELEGRAM

    @property
    def is_discord(self) -> bool:
        return self is Channel.DISCORD

    @property
    def is_web(self) -> bool:
        return self is Channel.WEB


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @classmethod
    def parse(cls, raw: object) -> MessageRole:
        return _parse_literal(cls, raw, InvalidMessageRoleError, "message role")

    @classmethod
    def from_json(cls, data: str | bytes) -> MessageRole:
        return cls.parse(_loads_string(data, InvalidMessageRoleError, "message role"))

    def to_json(self) -> str:
        return json.dumps(self.value)

    @property
    def is_user(self) -> bool:
        return self is MessageRole.USER

    @property
    def is_assistant(self) -> bool:
        return self is MessageRole.ASSISTANT

    @property
    def is_system(self) -> bool:
        return self is MessageRole.SYSTEM


class TaskStatus(StrEnum):
    """Lifecycle of a task: pending -> running -> completed | failed."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, raw: object) -> TaskStatus:
        return _parse_literal(cls, raw, InvalidTaskStatusError, "task status")

    @classmethod
    def from_json(cls, data: str | bytes) -> TaskStatus:
        return cls.parse(_loads_string(data, InvalidTaskStatusError, "task status"))

    def to_json(self) -> str:
        return json.dumps(self.value)

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def can_transition_to(self, target: TaskStatus) -> bool:
        return target in _TASK_TRANSITIONS[self]


_TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.RUNNING, TaskStatus.FAILED}),
    TaskStatus.RUNNING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


class LogLevel(StrEnum):
    """Severity of a log record, totally ordered debug < info < warn < error."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @classmethod
    def parse(cls, raw: object) -> LogLevel:
        return _parse_literal(cls, raw, InvalidLogLevelError, "log level")

    @classmethod
    def from_json(cls, data: str | bytes) -> LogLevel:
        return cls.parse(_loads_string(data, InvalidLogLevelError, "log level"))

    def to_json(self) -> str:
        return json.dumps(self.value)

    @property
    def priority(self) -> int:
        return _LOG_PRIORITY[self]

    def enabled(self, threshold: LogLevel) -> bool:
        """True if a record at this level passes ``threshold``."""
        return self.priority >= LogLevel.parse(threshold).priority

    should_log = enabled

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.priority < other.priority

    def __le__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.priority <= other.priority

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.priority > other.priority

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.priority >= other.priority

    def to_logging_level(self) -> int:
        """Matching stdlib ``logging`` level number."""
        return _STDLIB_LEVELS[self]

    @classmethod
    def from_logging_level(cls, levelno: int) -> LogLevel:
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.WARN
        if levelno >= logging.INFO:
            return cls.INFO
        return cls.DEBUG


_LOG_PRIORITY: dict[LogLevel, int] = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}

_STDLIB_LEVELS: dict[LogLevel, int] = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


# =============================================================================
# Semantic version
# =============================================================================


@total_ordering
@dataclass(frozen=True)
class Version:
    """Plain ``MAJOR.MINOR.PATCH`` version; pre-release and build suffixes are rejected."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or self.value == "":
            raise InvalidVersionError("version cannot be empty")
        if not _VERSION_RE.fullmatch(self.value):
            raise InvalidVersionError(f"invalid version: {self.value!r}")

    def __str__(self) -> str:
        return self.value

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.as_tuple() < other.as_tuple()

    def as_tuple(self) -> tuple[int, int, int]:
        major, minor, patch = self.value.split(".")
        return int(major), int(minor), int(patch)

    @property
    def major(self) -> int:
        return self.as_tuple()[0]

    @property
    def minor(self) -> int:
        return self.as_tuple()[1]

    @property
    def patch(self) -> int:
        return self.as_tuple()[2]

    def to_json(self) -> str:
        return json.dumps(self.value)

    @classmethod
    def from_json(cls, data: str | bytes) -> Version:
        return cls(_loads_string(data, InvalidVersionError, "version"))
