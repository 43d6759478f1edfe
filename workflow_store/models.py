"""SQLAlchemy models for the workflow store tables.

These are row shapes only. Timestamps are RFC 3339 TEXT, optional columns are
nullable TEXT, and ``schedules.enabled`` is an INTEGER flag. The schema itself
is owned by the SQL migrations; the models must stay in step with them.
"""

from __future__ import annotations

from sqlalchemy import ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all records."""


# =============================================================================
# CONVERSATION TABLES
# =============================================================================


class UserRecord(Base):
    """A person as seen through one channel."""

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("channel", "channel_user_id"),)

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    channel: Mapped[str] = mapped_column(Text, nullable=False)
    channel_user_id: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)


class SessionRecord(Base):
    __tablename__ = "sessions"
    __table_args__ = (Index("idx_sessions_user_id", "user_id"),)

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        Text, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)


class MessageRecord(Base):
    __tablename__ = "messages"
    __table_args__ = (Index("idx_messages_session_id", "session_id"),)

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        Text, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)


class TaskRecord(Base):
    """One skill invocation. ``output`` and ``error`` are NULL until set."""

    __tablename__ = "tasks"
    __table_args__ = (Index("idx_tasks_session_id", "session_id"),)

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        Text, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False
    )
    skill: Mapped[str] = mapped_column(Text, nullable=False)
    input: Mapped[str] = mapped_column(Text, nullable=False)
    output: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)


# =============================================================================
# SKILL TABLES
# =============================================================================


class SkillRecord(Base):
    __tablename__ = "skills"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    version: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(Text, nullable=False)
    permissions: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[str] = mapped_column("metadata", Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)


class ScheduleRecord(Base):
    """Cron trigger keyed by skill name, removed together with the skill."""

    __tablename__ = "schedules"
    __table_args__ = (Index("idx_schedules_skill", "skill"),)

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    skill: Mapped[str] = mapped_column(
        Text, ForeignKey("skills.name", ondelete="CASCADE"), nullable=False
    )
    cron_expression: Mapped[str] = mapped_column(Text, nullable=False)
    input: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)


# =============================================================================
# OPERATIONAL TABLES
# =============================================================================


class LogRecord(Base):
    __tablename__ = "logs"
    __table_args__ = (
        Index("idx_logs_level", "level"),
        Index("idx_logs_source", "source"),
        Index("idx_logs_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    level: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[str | None] = mapped_column("metadata", Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
