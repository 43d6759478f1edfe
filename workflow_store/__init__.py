"""
Workflow Store

Domain model and persistence layer for a conversational workflow engine:
users, sessions, messages, skill tasks, skills, cron schedules and logs,
stored in SQLite or PostgreSQL through async SQLAlchemy.
"""

__version__ = "0.1.0"

# Access control
from workflow_store.access import SessionAccessService

# Clock
from workflow_store.clock import Clock, ManualClock, SystemClock, use_clock

# Configuration
from workflow_store.config import DatabaseSettings, load_settings

# Connectors
from workflow_store.connectors import (
    ChannelConnector,
    InboundMessage,
    MemoryConnector,
    OutboundResponse,
)
from workflow_store.cron import CronExpression

# Database
from workflow_store.db import Database

# Entities
from workflow_store.entities import Log, Message, Schedule, Session, Skill, Task, User

# Errors
from workflow_store.errors import (
    BackendError,
    ConfigError,
    ConflictError,
    DeadlineExceededError,
    InvalidTransitionError,
    MigrationError,
    NotFoundError,
    SchemaNotInitializedError,
    StoreError,
    ValidationError,
)

# Migrations
from workflow_store.migrations import MigrationRunner

# Repositories
from workflow_store.repositories import (
    LogRepository,
    MessageRepository,
    Repositories,
    ScheduleRepository,
    SessionRepository,
    SkillRepository,
    TaskRepository,
    UserRepository,
)

# Value objects
from workflow_store.values import (
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

__all__ = [
    # Version
    "__version__",
    # Values
    "UserID",
    "SessionID",
    "MessageID",
    "TaskID",
    "SkillID",
    "ScheduleID",
    "LogID",
    "Channel",
    "MessageRole",
    "TaskStatus",
    "LogLevel",
    "Version",
    "CronExpression",
    # Entities
    "User",
    "Session",
    "Message",
    "Task",
    "Skill",
    "Schedule",
    "Log",
    # Clock
    "Clock",
    "SystemClock",
    "ManualClock",
    "use_clock",
    # Config
    "DatabaseSettings",
    "load_settings",
    # Database
    "Database",
    "MigrationRunner",
    # Repositories
    "Repositories",
    "UserRepository",
    "SessionRepository",
    "MessageRepository",
    "TaskRepository",
    "SkillRepository",
    "ScheduleRepository",
    "LogRepository",
    # Access
    "SessionAccessService",
    # Connectors
    "ChannelConnector",
    "InboundMessage",
    "OutboundResponse",
    "MemoryConnector",
    # Errors
    "StoreError",
    "ValidationError",
    "InvalidTransitionError",
    "NotFoundError",
    "ConflictError",
    "BackendError",
    "SchemaNotInitializedError",
    "MigrationError",
    "DeadlineExceededError",
    "ConfigError",
]
