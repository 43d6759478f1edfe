"""
Repository ports, one per entity kind.

Lookups by primary key (and by natural key where one exists) raise
``NotFoundError`` for absent rows; list lookups return an empty list.
``delete`` of an absent row raises ``NotFoundError`` as well.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from ..entities import Log, Message, Schedule, Session, Skill, Task, User
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


class UserRepository(ABC):
    @abstractmethod
    async def create(self, user: User) -> None: ...

    @abstractmethod
    async def find_by_id(self, user_id: UserID | str) -> User: ...

    @abstractmethod
    async def find_by_channel(self, channel: Channel | str, channel_id: str) -> User: ...

    @abstractmethod
    async def list(self) -> list[User]: ...

    @abstractmethod
    async def delete(self, user_id: UserID | str) -> None: ...


class SessionRepository(ABC):
    @abstractmethod
    async def create(self, session: Session) -> None: ...

    @abstractmethod
    async def find_by_id(self, session_id: SessionID | str) -> Session: ...

    @abstractmethod
    async def find_by_user_id(self, user_id: UserID | str) -> list[Session]: ...

    @abstractmethod
    async def update(self, session: Session) -> None: ...

    @abstractmethod
    async def delete(self, session_id: SessionID | str) -> None: ...


class MessageRepository(ABC):
    """Messages are append-only; there is no update."""

    @abstractmethod
    async def create(self, message: Message) -> None: ...

    @abstractmethod
    async def find_by_id(self, message_id: MessageID | str) -> Message: ...

    @abstractmethod
    async def find_by_session_id(self, session_id: SessionID | str) -> list[Message]:
        """Messages of a session, oldest first."""

    @abstractmethod
    async def delete(self, message_id: MessageID | str) -> None: ...

    @abstractmethod
    async def delete_by_session_id(self, session_id: SessionID | str) -> int:
        """Remove every message of a session; returns how many were removed."""


class TaskRepository(ABC):
    @abstractmethod
    async def create(self, task: Task) -> None: ...

    @abstractmethod
    async def find_by_id(self, task_id: TaskID | str) -> Task: ...

    @abstractmethod
    async def find_by_session_id(self, session_id: SessionID | str) -> list[Task]:
        """Tasks of a session, newest first."""

    @abstractmethod
    async def update(self, task: Task) -> None: ...

    @abstractmethod
    async def delete(self, task_id: TaskID | str) -> None: ...


class SkillRepository(ABC):
    @abstractmethod
    async def create(self, skill: Skill) -> None: ...

    @abstractmethod
    async def find_by_id(self, skill_id: SkillID | str) -> Skill: ...

    @abstractmethod
    async def find_by_name(self, name: str) -> Skill: ...

    @abstractmethod
    async def list(self) -> list[Skill]: ...

    @abstractmethod
    async def update(self, skill: Skill) -> None: ...

    @abstractmethod
    async def delete(self, skill_id: SkillID | str) -> None: ...


class ScheduleRepository(ABC):
    @abstractmethod
    async def create(self, schedule: Schedule) -> None: ...

    @abstractmethod
    async def find_by_id(self, schedule_id: ScheduleID | str) -> Schedule: ...

    @abstractmethod
    async def find_by_skill(self, skill: str) -> list[Schedule]: ...

    @abstractmethod
    async def list(self) -> list[Schedule]: ...

    @abstractmethod
    async def find_enabled(self) -> list[Schedule]: ...

    @abstractmethod
    async def update(self, schedule: Schedule) -> None: ...

    @abstractmethod
    async def delete(self, schedule_id: ScheduleID | str) -> None: ...


class LogRepository(ABC):
    """Log records are append-only and pruned by age."""

    @abstractmethod
    async def create(self, log: Log) -> None: ...

    @abstractmethod
    async def find_by_id(self, log_id: LogID | str) -> Log: ...

    @abstractmethod
    async def find_by_level(self, level: LogLevel | str, limit: int) -> list[Log]: ...

    @abstractmethod
    async def find_by_source(self, source: str, limit: int) -> list[Log]: ...

    @abstractmethod
    async def find_by_date_range(self, start: datetime, end: datetime, limit: int) -> list[Log]:
        """Records with ``start <= created_at <= end``, newest first."""

    @abstractmethod
    async def count_by_level(self, level: LogLevel | str) -> int: ...

    @abstractmethod
    async def delete(self, log_id: LogID | str) -> None: ...

    @abstractmethod
    async def delete_older_than(self, cutoff: datetime) -> int:
        """Remove records created strictly before ``cutoff``; returns how many."""
