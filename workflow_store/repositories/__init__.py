"""Repository contracts and their SQLAlchemy implementations."""

from .base import (
    LogRepository,
    MessageRepository,
    ScheduleRepository,
    SessionRepository,
    SkillRepository,
    TaskRepository,
    UserRepository,
)
from .sql import (
    Repositories,
    SqlLogRepository,
    SqlMessageRepository,
    SqlScheduleRepository,
    SqlSessionRepository,
    SqlSkillRepository,
    SqlTaskRepository,
    SqlUserRepository,
)

__all__ = [
    "LogRepository",
    "MessageRepository",
    "Repositories",
    "ScheduleRepository",
    "SessionRepository",
    "SkillRepository",
    "SqlLogRepository",
    "SqlMessageRepository",
    "SqlScheduleRepository",
    "SqlSessionRepository",
    "SqlSkillRepository",
    "SqlTaskRepository",
    "SqlUserRepository",
    "TaskRepository",
    "UserRepository",
]
