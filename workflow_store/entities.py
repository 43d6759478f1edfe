"""
Domain entities.

Entities are transient views of rows: constructors assign a fresh ID and a
timestamp from the process clock, mutators only touch the instance, and
persistence always goes through a repository.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .clock import utc_now
from .cron import CronExpression
from .errors import InvalidTransitionError, ValidationError
from .values import (
    Channel,
    LogID,
    LogLevel,
    MessageID,
    MessageRole,
    ScheduleID,
    SessionID,
    SkillID,
    TaskID,
    TaskStatus,
    UserID,
    Version,
)

SANDBOXED_PERMISSIONS = frozenset({"shell", "filesystem", "network", "system"})
DEFAULT_SKILL_TIMEOUT = 30


def _json_object(text: str) -> dict[str, Any] | None:
    """Parse a JSON object, or None if ``text`` is empty, malformed or not an object."""
    if not text:
        return None
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


@dataclass
class User:
    id: UserID
    channel: Channel
    channel_id: str
    created_at: datetime

    @classmethod
    def create(cls, channel: Channel | str, channel_id: str) -> User:
        """New user first observed on ``channel`` as ``channel_id``."""
        if not channel_id:
            raise ValidationError("channel user id cannot be empty")
        return cls(
            id=UserID.generate(),
            channel=Channel.parse(channel),
            channel_id=channel_id,
            created_at=utc_now(),
        )

    def is_same_channel(self, other: User) -> bool:
        return self.channel is other.channel


@dataclass
class Session:
    """A user's conversation context. ``updated_at`` never precedes ``created_at``."""

    id: SessionID
    user_id: UserID
    created_at: datetime
    updated_at: datetime

    @classmethod
    def create(cls, user_id: UserID | str) -> Session:
        now = utc_now()
        return cls(id=SessionID.generate(), user_id=UserID.coerce(user_id), created_at=now, updated_at=now)

    def touch(self) -> None:
        self.updated_at = utc_now()

    def is_owned_by(self, user_id: UserID | str) -> bool:
        return self.user_id == UserID.coerce(user_id)


@dataclass(frozen=True)
class Message:
    id: MessageID
    session_id: SessionID
    role: MessageRole
    content: str
    created_at: datetime

    @classmethod
    def create(cls, session_id: SessionID | str, role: MessageRole | str, content: str) -> Message:
        return cls(
            id=MessageID.generate(),
            session_id=SessionID.coerce(session_id),
            role=MessageRole.parse(role),
            content=content,
            created_at=utc_now(),
        )

    @classmethod
    def user_message(cls, session_id: SessionID | str, content: str) -> Message:
        return cls.create(session_id, MessageRole.USER, content)

    @classmethod
    def assistant_message(cls, session_id: SessionID | str, content: str) -> Message:
        return cls.create(session_id, MessageRole.ASSISTANT, content)

    @classmethod
    def system_message(cls, session_id: SessionID | str, content: str) -> Message:
        return cls.create(session_id, MessageRole.SYSTEM, content)

    @property
    def is_from_user(self) -> bool:
        return self.role is MessageRole.USER

    @property
    def is_from_assistant(self) -> bool:
        return self.role is MessageRole.ASSISTANT

    @property
    def is_system(self) -> bool:
        return self.role is MessageRole.SYSTEM

    def belongs_to_session(self, session_id: SessionID | str) -> bool:
        return self.session_id == SessionID.coerce(session_id)


@dataclass
class Task:
    """A single skill invocation within a session.

    ``output`` is non-empty only once completed and ``error`` only once failed;
    an empty string stands for "absent" (stored as NULL).
    """

    id: TaskID
    session_id: SessionID
    skill: str
    input: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime
    output: str = ""
    error: str = ""

    @classmethod
    def create(cls, session_id: SessionID | str, skill: str, input: str) -> Task:
        now = utc_now()
        return cls(
            id=TaskID.generate(),
            session_id=SessionID.coerce(session_id),
            skill=skill,
            input=input,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    def _transition(self, target: TaskStatus) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(
                f"task {self.id}: cannot move from {self.status.value} to {target.value}"
            )
        self.status = target
        self.updated_at = utc_now()

    def set_running(self) -> None:
        self._transition(TaskStatus.RUNNING)

    def set_completed(self, output: str) -> None:
        self._transition(TaskStatus.COMPLETED)
        self.output = output
        self.error = ""

    def set_failed(self, error: str | BaseException) -> None:
        self._transition(TaskStatus.FAILED)
        self.error = str(error)
        self.output = ""

    @property
    def is_pending(self) -> bool:
        return self.status is TaskStatus.PENDING

    @property
    def is_running(self) -> bool:
        return self.status is TaskStatus.RUNNING

    @property
    def is_completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status is TaskStatus.FAILED

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def belongs_to_session(self, session_id: SessionID | str) -> bool:
        return self.session_id == SessionID.coerce(session_id)

    def input_data(self) -> dict[str, Any] | None:
        return _json_object(self.input)

    def output_data(self) -> dict[str, Any] | None:
        return _json_object(self.output)


@dataclass
class Skill:
    """A registered, versioned executable.

    ``permissions`` (JSON array of strings) and ``metadata`` (JSON object) are
    kept as opaque JSON text, exactly as stored.
    """

    id: SkillID
    name: str
    version: Version
    location: str
    permissions: str
    metadata: str
    created_at: datetime

    @classmethod
    def create(
        cls,
        name: str,
        version: Version | str,
        location: str,
        permissions: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Skill:
        if not name:
            raise ValidationError("skill name cannot be empty")
        return cls(
            id=SkillID.generate(),
            name=name,
            version=version if isinstance(version, Version) else Version(version),
            location=location,
            permissions=json.dumps(list(permissions or [])),
            metadata=json.dumps(dict(metadata or {})),
            created_at=utc_now(),
        )

    def update(
        self,
        *,
        version: Version | str | None = None,
        location: str | None = None,
        permissions: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Change the mutable fields; anything left as None is kept."""
        if version is not None:
            self.version = version if isinstance(version, Version) else Version(version)
        if location is not None:
            self.location = location
        if permissions is not None:
            self.permissions = json.dumps(list(permissions))
        if metadata is not None:
            self.metadata = json.dumps(dict(metadata))

    def permission_list(self) -> list[str]:
        try:
            value = json.loads(self.permissions) if self.permissions else []
        except json.JSONDecodeError:
            return []
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]

    def metadata_dict(self) -> dict[str, Any] | None:
        return _json_object(self.metadata)

    def requires_permission(self, permission: str) -> bool:
        return permission in self.permission_list()

    def requires_sandbox(self) -> bool:
        return any(p in SANDBOXED_PERMISSIONS for p in self.permission_list())

    def timeout_seconds(self) -> int:
        metadata = self.metadata_dict() or {}
        timeout = metadata.get("timeout")
        if isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
            return int(timeout)
        return DEFAULT_SKILL_TIMEOUT


@dataclass
class Schedule:
    """Cron-triggered binding of a skill name to an input payload."""

    id: ScheduleID
    skill: str
    cron: CronExpression
    input: str
    enabled: bool
    created_at: datetime

    @classmethod
    def create(cls, skill: str, cron: CronExpression | str, input: str) -> Schedule:
        return cls(
            id=ScheduleID.generate(),
            skill=skill,
            cron=cron if isinstance(cron, CronExpression) else CronExpression(cron),
            input=input,
            enabled=True,
            created_at=utc_now(),
        )

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    def is_enabled(self) -> bool:
        return self.enabled

    def reschedule(self, cron: CronExpression | str) -> None:
        self.cron = cron if isinstance(cron, CronExpression) else CronExpression(cron)

    def belongs_to_skill(self, skill: str) -> bool:
        return self.skill == skill

    def input_data(self) -> dict[str, Any] | None:
        return _json_object(self.input)


@dataclass(frozen=True)
class Log:
    id: LogID
    level: LogLevel
    source: str
    message: str
    created_at: datetime
    metadata: str = ""

    @classmethod
    def create(
        cls,
        level: LogLevel | str,
        source: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> Log:
        return cls(
            id=LogID.generate(),
            level=LogLevel.parse(level),
            source=source,
            message=message,
            created_at=utc_now(),
            metadata=json.dumps(metadata) if metadata is not None else "",
        )

    @property
    def is_debug(self) -> bool:
        return self.level is LogLevel.DEBUG

    @property
    def is_info(self) -> bool:
        return self.level is LogLevel.INFO

    @property
    def is_warn(self) -> bool:
        return self.level is LogLevel.WARN

    @property
    def is_error(self) -> bool:
        return self.level is LogLevel.ERROR

    def is_from_source(self, source: str) -> bool:
        return self.source == source

    def metadata_dict(self) -> dict[str, Any] | None:
        return _json_object(self.metadata)
