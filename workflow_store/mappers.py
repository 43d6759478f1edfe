"""
Mapping between domain entities and storage records.

Every function is nil-safe: ``None`` in gives ``None`` out. On the way in,
empty optional strings become NULL and booleans become 0/1; on the way out,
stored literals are re-validated, so a row holding an unknown enum value or a
malformed ID raises ``ValidationError`` rather than producing a bad entity.
Unparseable timestamps come back as ``ZERO_TIME``.
"""

from __future__ import annotations

from collections.abc import Iterable

from .clock import format_timestamp, parse_timestamp
from .cron import CronExpression
from .entities import Log, Message, Schedule, Session, Skill, Task, User
from .models import (
    LogRecord,
    MessageRecord,
    ScheduleRecord,
    SessionRecord,
    SkillRecord,
    TaskRecord,
    UserRecord,
)
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


def _nullable(value: str) -> str | None:
    return value if value else None


def _text(value: str | None) -> str:
    return value if value is not None else ""


# =============================================================================
# User / Session / Message
# =============================================================================


def user_to_record(user: User | None) -> UserRecord | None:
    if user is None:
        return None
    return UserRecord(
        id=str(user.id),
        channel=user.channel.value,
        channel_user_id=user.channel_id,
        created_at=format_timestamp(user.created_at),
    )


def user_from_record(record: UserRecord | None) -> User | None:
    if record is None:
        return None
    return User(
        id=UserID(record.id),
        channel=Channel.parse(record.channel),
        channel_id=record.channel_user_id,
        created_at=parse_timestamp(record.created_at),
    )


def session_to_record(session: Session | None) -> SessionRecord | None:
    if session is None:
        return None
    return SessionRecord(
        id=str(session.id),
        user_id=str(session.user_id),
        created_at=format_timestamp(session.created_at),
        updated_at=format_timestamp(session.updated_at),
    )


def session_from_record(record: SessionRecord | None) -> Session | None:
    if record is None:
        return None
    return Session(
        id=SessionID(record.id),
        user_id=UserID(record.user_id),
        created_at=parse_timestamp(record.created_at),
        updated_at=parse_timestamp(record.updated_at),
    )


def message_to_record(message: Message | None) -> MessageRecord | None:
    if message is None:
        return None
    return MessageRecord(
        id=str(message.id),
        session_id=str(message.session_id),
        role=message.role.value,
        content=message.content,
        created_at=format_timestamp(message.created_at),
    )


def message_from_record(record: MessageRecord | None) -> Message | None:
    if record is None:
        return None
    return Message(
        id=MessageID(record.id),
        session_id=SessionID(record.session_id),
        role=MessageRole.parse(record.role),
        content=record.content,
        created_at=parse_timestamp(record.created_at),
    )


# =============================================================================
# Task
# =============================================================================


def task_to_record(task: Task | None) -> TaskRecord | None:
    if task is None:
        return None
    return TaskRecord(
        id=str(task.id),
        session_id=str(task.session_id),
        skill=task.skill,
        input=task.input,
        output=_nullable(task.output),
        status=task.status.value,
        error=_nullable(task.error),
        created_at=format_timestamp(task.created_at),
        updated_at=format_timestamp(task.updated_at),
    )


def task_from_record(record: TaskRecord | None) -> Task | None:
    if record is None:
        return None
    return Task(
        id=TaskID(record.id),
        session_id=SessionID(record.session_id),
        skill=record.skill,
        input=record.input,
        status=TaskStatus.parse(record.status),
        created_at=parse_timestamp(record.created_at),
        updated_at=parse_timestamp(record.updated_at),
        output=_text(record.output),
        error=_text(record.error),
    )


# =============================================================================
# Skill / Schedule
# =============================================================================


def skill_to_record(skill: Skill | None) -> SkillRecord | None:
    if skill is None:
        return None
    return SkillRecord(
        id=str(skill.id),
        name=skill.name,
        version=str(skill.version),
        location=skill.location,
        permissions=skill.permissions,
        metadata_=skill.metadata,
        created_at=format_timestamp(skill.created_at),
    )


def skill_from_record(record: SkillRecord | None) -> Skill | None:
    if record is None:
        return None
    return Skill(
        id=SkillID(record.id),
        name=record.name,
        version=Version(record.version),
        location=record.location,
        permissions=record.permissions,
        metadata=record.metadata_,
        created_at=parse_timestamp(record.created_at),
    )


def schedule_to_record(schedule: Schedule | None) -> ScheduleRecord | None:
    if schedule is None:
        return None
    return ScheduleRecord(
        id=str(schedule.id),
        skill=schedule.skill,
        cron_expression=str(schedule.cron),
        input=schedule.input,
        enabled=1 if schedule.enabled else 0,
        created_at=format_timestamp(schedule.created_at),
    )


def schedule_from_record(record: ScheduleRecord | None) -> Schedule | None:
    if record is None:
        return None
    return Schedule(
        id=ScheduleID(record.id),
        skill=record.skill,
        cron=CronExpression(record.cron_expression),
        input=record.input,
        enabled=bool(record.enabled),
        created_at=parse_timestamp(record.created_at),
    )


# =============================================================================
# Log
# =============================================================================


def log_to_record(log: Log | None) -> LogRecord | None:
    if log is None:
        return None
    return LogRecord(
        id=str(log.id),
        level=log.level.value,
        source=log.source,
        message=log.message,
        metadata_=_nullable(log.metadata),
        created_at=format_timestamp(log.created_at),
    )


def log_from_record(record: LogRecord | None) -> Log | None:
    if record is None:
        return None
    return Log(
        id=LogID(record.id),
        level=LogLevel.parse(record.level),
        source=record.source,
        message=record.message,
        created_at=parse_timestamp(record.created_at),
        metadata=_text(record.metadata_),
    )


# =============================================================================
# Lists
# =============================================================================


def users_from_records(records: Iterable[UserRecord]) -> list[User]:
    return [user for record in records if (user := user_from_record(record)) is not None]


def sessions_from_records(records: Iterable[SessionRecord]) -> list[Session]:
    return [s for record in records if (s := session_from_record(record)) is not None]


def messages_from_records(records: Iterable[MessageRecord]) -> list[Message]:
    return [m for record in records if (m := message_from_record(record)) is not None]


def tasks_from_records(records: Iterable[TaskRecord]) -> list[Task]:
    return [t for record in records if (t := task_from_record(record)) is not None]


def skills_from_records(records: Iterable[SkillRecord]) -> list[Skill]:
    return [s for record in records if (s := skill_from_record(record)) is not None]


def schedules_from_records(records: Iterable[ScheduleRecord]) -> list[Schedule]:
    return [s for record in records if (s := schedule_from_record(record)) is not None]


def logs_from_records(records: Iterable[LogRecord]) -> list[Log]:
    return [log for record in records if (log := log_from_record(record)) is not None]
