"""SQLAlchemy repositories shared by the SQLite and Postgres backends."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar, cast

from sqlalchemy import Select, delete, func, select, update

from ..clock import format_timestamp
from ..db import Database
from ..entities import Log, Message, Schedule, Session, Skill, Task, User
from ..errors import NotFoundError, ValidationError
from ..mappers import (
    log_from_record,
    log_to_record,
    logs_from_records,
    message_from_record,
    message_to_record,
    messages_from_records,
    schedule_from_record,
    schedule_to_record,
    schedules_from_records,
    session_from_record,
    session_to_record,
    sessions_from_records,
    skill_from_record,
    skill_to_record,
    skills_from_records,
    task_from_record,
    task_to_record,
    tasks_from_records,
    user_from_record,
    user_to_record,
    users_from_records,
)
from ..models import (
    Base,
    LogRecord,
    MessageRecord,
    ScheduleRecord,
    SessionRecord,
    SkillRecord,
    TaskRecord,
    UserRecord,
)
from ..values import (
    Channel,
    LogID,
    LogLevel,
    MessageID,
    ScheduleID,
    SessionID,
    SkillID,
    TaskID,
    UserID,
)
from .base import (
    LogRepository,
    MessageRepository,
    ScheduleRepository,
    SessionRepository,
    SkillRepository,
    TaskRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Base)


class _SqlRepository:
    """Single-statement helpers; each call runs in its own transaction."""

    entity_name = "entity"

    def __init__(self, database: Database) -> None:
        self._db = database

    async def _insert(self, record: Base | None) -> None:
        async with self._db.session() as session:
            session.add(record)

    async def _get(self, model: type[R], key: str) -> R:
        async with self._db.session() as session:
            record = await session.get(model, key)
        if record is None:
            raise NotFoundError(self.entity_name, key)
        return record

    async def _one(self, stmt: Select[tuple[R]], key: str) -> R:
        async with self._db.session() as session:
            record = (await session.scalars(stmt)).one_or_none()
        if record is None:
            raise NotFoundError(self.entity_name, key)
        return record

    async def _all(self, stmt: Select[tuple[R]]) -> list[R]:
        async with self._db.session() as session:
            return list((await session.scalars(stmt)).all())

    async def _update(self, model: type[Base], key: str, values: dict[Any, Any]) -> None:
        stmt = update(model).where(model.id == key).values(values)  # type: ignore[attr-defined]
        async with self._db.session() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise NotFoundError(self.entity_name, key)

    async def _delete(self, model: type[Base], key: str) -> None:
        stmt = delete(model).where(model.id == key)  # type: ignore[attr-defined]
        async with self._db.session() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise NotFoundError(self.entity_name, key)


def _check_limit(limit: int) -> int:
    if limit <= 0:
        raise ValidationError(f"limit must be positive, got {limit}")
    return limit


# =============================================================================
# Conversation
# =============================================================================


class SqlUserRepository(_SqlRepository, UserRepository):
    entity_name = "user"

    async def create(self, user: User) -> None:
        await self._insert(user_to_record(user))
        logger.debug("created user id=%s channel=%s", user.id, user.channel)

    async def find_by_id(self, user_id: UserID | str) -> User:
        key = str(UserID.coerce(user_id))
        return user_from_record(await self._get(UserRecord, key))  # type: ignore[return-value]

    async def find_by_channel(self, channel: Channel | str, channel_id: str) -> User:
        channel = Channel.parse(channel)
        stmt = select(UserRecord).where(
            UserRecord.channel == channel.value,
            UserRecord.channel_user_id == channel_id,
        )
        record = await self._one(stmt, f"{channel.value}:{channel_id}")
        return user_from_record(record)  # type: ignore[return-value]

    async def list(self) -> list[User]:
        stmt = select(UserRecord).order_by(UserRecord.created_at.desc())
        return users_from_records(await self._all(stmt))

    async def delete(self, user_id: UserID | str) -> None:
        key = str(UserID.coerce(user_id))
        await self._delete(UserRecord, key)
        logger.debug("deleted user id=%s", key)


class SqlSessionRepository(_SqlRepository, SessionRepository):
    entity_name = "session"

    async def create(self, session: Session) -> None:
        await self._insert(session_to_record(session))
        logger.debug("created session id=%s user=%s", session.id, session.user_id)

    async def find_by_id(self, session_id: SessionID | str) -> Session:
        key = str(SessionID.coerce(session_id))
        return session_from_record(await self._get(SessionRecord, key))  # type: ignore[return-value]

    async def find_by_user_id(self, user_id: UserID | str) -> list[Session]:
        stmt = (
            select(SessionRecord)
            .where(SessionRecord.user_id == str(UserID.coerce(user_id)))
            .order_by(SessionRecord.created_at.desc())
        )
        return sessions_from_records(await self._all(stmt))

    async def update(self, session: Session) -> None:
        await self._update(
            SessionRecord,
            str(session.id),
            {SessionRecord.updated_at: format_timestamp(session.updated_at)},
        )

    async def delete(self, session_id: SessionID | str) -> None:
        key = str(SessionID.coerce(session_id))
        await self._delete(SessionRecord, key)
        logger.debug("deleted session id=%s", key)


class SqlMessageRepository(_SqlRepository, MessageRepository):
    entity_name = "message"

    async def create(self, message: Message) -> None:
        await self._insert(message_to_record(message))
        logger.debug("created message id=%s session=%s", message.id, message.session_id)

    async def find_by_id(self, message_id: MessageID | str) -> Message:
        key = str(MessageID.coerce(message_id))
        return message_from_record(await self._get(MessageRecord, key))  # type: ignore[return-value]

    async def find_by_session_id(self, session_id: SessionID | str) -> list[Message]:
        stmt = (
            select(MessageRecord)
            .where(MessageRecord.session_id == str(SessionID.coerce(session_id)))
            .order_by(MessageRecord.created_at.asc())
        )
        return messages_from_records(await self._all(stmt))

    async def delete(self, message_id: MessageID | str) -> None:
        await self._delete(MessageRecord, str(MessageID.coerce(message_id)))

    async def delete_by_session_id(self, session_id: SessionID | str) -> int:
        key = str(SessionID.coerce(session_id))
        stmt = delete(MessageRecord).where(MessageRecord.session_id == key)
        async with self._db.session() as session:
            removed = (await session.execute(stmt)).rowcount
        logger.debug("deleted %d messages of session=%s", removed, key)
        return removed


class SqlTaskRepository(_SqlRepository, TaskRepository):
    entity_name = "task"

    async def create(self, task: Task) -> None:
        await self._insert(task_to_record(task))
        logger.debug("created task id=%s skill=%s", task.id, task.skill)

    async def find_by_id(self, task_id: TaskID | str) -> Task:
        key = str(TaskID.coerce(task_id))
        return task_from_record(await self._get(TaskRecord, key))  # type: ignore[return-value]

    async def find_by_session_id(self, session_id: SessionID | str) -> list[Task]:
        stmt = (
            select(TaskRecord)
            .where(TaskRecord.session_id == str(SessionID.coerce(session_id)))
            .order_by(TaskRecord.created_at.desc())
        )
        return tasks_from_records(await self._all(stmt))

    async def update(self, task: Task) -> None:
        record = cast(TaskRecord, task_to_record(task))
        await self._update(
            TaskRecord,
            record.id,
            {
                TaskRecord.output: record.output,
                TaskRecord.status: record.status,
                TaskRecord.error: record.error,
                TaskRecord.updated_at: record.updated_at,
            },
        )
        logger.debug("updated task id=%s status=%s", record.id, record.status)

    async def delete(self, task_id: TaskID | str) -> None:
        await self._delete(TaskRecord, str(TaskID.coerce(task_id)))


# =============================================================================
# Skills and schedules
# =============================================================================


class SqlSkillRepository(_SqlRepository, SkillRepository):
    entity_name = "skill"

    async def create(self, skill: Skill) -> None:
        await self._insert(skill_to_record(skill))
        logger.debug("created skill id=%s name=%s version=%s", skill.id, skill.name, skill.version)

    async def find_by_id(self, skill_id: SkillID | str) -> Skill:
        key = str(SkillID.coerce(skill_id))
        return skill_from_record(await self._get(SkillRecord, key))  # type: ignore[return-value]

    async def find_by_name(self, name: str) -> Skill:
        stmt = select(SkillRecord).where(SkillRecord.name == name)
        return skill_from_record(await self._one(stmt, name))  # type: ignore[return-value]

    async def list(self) -> list[Skill]:
        stmt = select(SkillRecord).order_by(SkillRecord.created_at.desc())
        return skills_from_records(await self._all(stmt))

    async def update(self, skill: Skill) -> None:
        record = cast(SkillRecord, skill_to_record(skill))
        await self._update(
            SkillRecord,
            record.id,
            {
                SkillRecord.version: record.version,
                SkillRecord.location: record.location,
                SkillRecord.permissions: record.permissions,
                SkillRecord.metadata_: record.metadata_,
            },
        )
        logger.debug("updated skill id=%s version=%s", record.id, record.version)

    async def delete(self, skill_id: SkillID | str) -> None:
        key = str(SkillID.coerce(skill_id))
        await self._delete(SkillRecord, key)
        logger.debug("deleted skill id=%s", key)


class SqlScheduleRepository(_SqlRepository, ScheduleRepository):
    entity_name = "schedule"

    async def create(self, schedule: Schedule) -> None:
        await self._insert(schedule_to_record(schedule))
        logger.debug("created schedule id=%s skill=%s cron=%s", schedule.id, schedule.skill, schedule.cron)

    async def find_by_id(self, schedule_id: ScheduleID | str) -> Schedule:
        key = str(ScheduleID.coerce(schedule_id))
        return schedule_from_record(await self._get(ScheduleRecord, key))  # type: ignore[return-value]

    async def find_by_skill(self, skill: str) -> list[Schedule]:
        stmt = (
            select(ScheduleRecord)
            .where(ScheduleRecord.skill == skill)
            .order_by(ScheduleRecord.created_at.desc())
        )
        return schedules_from_records(await self._all(stmt))

    async def list(self) -> list[Schedule]:
        stmt = select(ScheduleRecord).order_by(ScheduleRecord.created_at.desc())
        return schedules_from_records(await self._all(stmt))

    async def find_enabled(self) -> list[Schedule]:
        stmt = (
            select(ScheduleRecord)
            .where(ScheduleRecord.enabled == 1)
            .order_by(ScheduleRecord.created_at.desc())
        )
        return schedules_from_records(await self._all(stmt))

    async def update(self, schedule: Schedule) -> None:
        record = cast(ScheduleRecord, schedule_to_record(schedule))
        await self._update(
            ScheduleRecord,
            record.id,
            {
                ScheduleRecord.cron_expression: record.cron_expression,
                ScheduleRecord.input: record.input,
                ScheduleRecord.enabled: record.enabled,
            },
        )

    async def delete(self, schedule_id: ScheduleID | str) -> None:
        await self._delete(ScheduleRecord, str(ScheduleID.coerce(schedule_id)))


# =============================================================================
# Logs
# =============================================================================


class SqlLogRepository(_SqlRepository, LogRepository):
    entity_name = "log"

    async def create(self, log: Log) -> None:
        await self._insert(log_to_record(log))

    async def find_by_id(self, log_id: LogID | str) -> Log:
        key = str(LogID.coerce(log_id))
        return log_from_record(await self._get(LogRecord, key))  # type: ignore[return-value]

    async def find_by_level(self, level: LogLevel | str, limit: int) -> list[Log]:
        stmt = (
            select(LogRecord)
            .where(LogRecord.level == LogLevel.parse(level).value)
            .order_by(LogRecord.created_at.desc())
            .limit(_check_limit(limit))
        )
        return logs_from_records(await self._all(stmt))

    async def find_by_source(self, source: str, limit: int) -> list[Log]:
        stmt = (
            select(LogRecord)
            .where(LogRecord.source == source)
            .order_by(LogRecord.created_at.desc())
            .limit(_check_limit(limit))
        )
        return logs_from_records(await self._all(stmt))

    async def find_by_date_range(self, start: datetime, end: datetime, limit: int) -> list[Log]:
        stmt = (
            select(LogRecord)
            .where(
                LogRecord.created_at >= format_timestamp(start),
                LogRecord.created_at <= format_timestamp(end),
            )
            .order_by(LogRecord.created_at.desc())
            .limit(_check_limit(limit))
        )
        return logs_from_records(await self._all(stmt))

    async def count_by_level(self, level: LogLevel | str) -> int:
        stmt = (
            select(func.count())
            .select_from(LogRecord)
            .where(LogRecord.level == LogLevel.parse(level).value)
        )
        async with self._db.session() as session:
            count = await session.scalar(stmt)
        return int(count or 0)

    async def delete(self, log_id: LogID | str) -> None:
        await self._delete(LogRecord, str(LogID.coerce(log_id)))

    async def delete_older_than(self, cutoff: datetime) -> int:
        stmt = delete(LogRecord).where(LogRecord.created_at < format_timestamp(cutoff))
        async with self._db.session() as session:
            removed = (await session.execute(stmt)).rowcount
        logger.debug("pruned %d log records older than %s", removed, cutoff)
        return removed


# =============================================================================
# Bundle
# =============================================================================


@dataclass(frozen=True)
class Repositories:
    """All repositories bound to one Database."""

    users: UserRepository
    sessions: SessionRepository
    messages: MessageRepository
    tasks: TaskRepository
    skills: SkillRepository
    schedules: ScheduleRepository
    logs: LogRepository

    @classmethod
    def for_database(cls, database: Database) -> Repositories:
        return cls(
            users=SqlUserRepository(database),
            sessions=SqlSessionRepository(database),
            messages=SqlMessageRepository(database),
            tasks=SqlTaskRepository(database),
            skills=SqlSkillRepository(database),
            schedules=SqlScheduleRepository(database),
            logs=SqlLogRepository(database),
        )
