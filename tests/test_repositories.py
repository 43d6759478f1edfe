from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import text

from workflow_store.clock import ManualClock, use_clock
from workflow_store.db import Database
from workflow_store.entities import Log, Message, Schedule, Session, Skill, Task, User
from workflow_store.errors import BackendError, ConflictError, NotFoundError, ValidationError
from workflow_store.repositories import Repositories
from workflow_store.values import LogLevel, SessionID, TaskStatus, UserID, Version


async def _user_with_session(repos: Repositories, channel_id: str = "u1") -> tuple[User, Session]:
    user = User.create("telegram", channel_id)
    await repos.users.create(user)
    session = Session.create(user.id)
    await repos.sessions.create(session)
    return user, session


# =============================================================================
# Users
# =============================================================================


@pytest.mark.asyncio
async def test_user_lookup_by_channel_and_conflict(repos: Repositories, clock: ManualClock) -> None:
    user = User.create("telegram", "u1")
    await repos.users.create(user)

    found = await repos.users.find_by_channel("telegram", "u1")
    assert found.id == user.id
    assert found == user

    with pytest.raises(ConflictError):
        await repos.users.create(User.create("telegram", "u1"))

    # Same channel id on another channel is a different user
    await repos.users.create(User.create("discord", "u1"))
    assert len(await repos.users.list()) == 2


@pytest.mark.asyncio
async def test_user_not_found(repos: Repositories) -> None:
    with pytest.raises(NotFoundError) as excinfo:
        await repos.users.find_by_id(UserID("missing"))
    assert excinfo.value.category == "not_found"
    assert not isinstance(excinfo.value, BackendError)

    with pytest.raises(NotFoundError):
        await repos.users.find_by_channel("web", "nobody")
    with pytest.raises(NotFoundError):
        await repos.users.delete("missing")


@pytest.mark.asyncio
async def test_users_listed_newest_first(repos: Repositories, clock: ManualClock) -> None:
    users = [User.create("web", f"w{i}") for i in range(3)]
    for user in users:
        await repos.users.create(user)
    assert [u.id for u in await repos.users.list()] == [u.id for u in reversed(users)]


@pytest.mark.asyncio
async def test_deleting_user_cascades(repos: Repositories, clock: ManualClock) -> None:
    user, session = await _user_with_session(repos)
    message = Message.user_message(session.id, "hi")
    task = Task.create(session.id, "echo", "{}")
    await repos.messages.create(message)
    await repos.tasks.create(task)

    await repos.users.delete(user.id)

    with pytest.raises(NotFoundError):
        await repos.sessions.find_by_id(session.id)
    with pytest.raises(NotFoundError):
        await repos.messages.find_by_id(message.id)
    with pytest.raises(NotFoundError):
        await repos.tasks.find_by_id(task.id)


# =============================================================================
# Sessions and messages
# =============================================================================


@pytest.mark.asyncio
async def test_session_update_persists_touch(repos: Repositories, clock: ManualClock) -> None:
    user, session = await _user_with_session(repos)
    session.touch()
    await repos.sessions.update(session)

    stored = await repos.sessions.find_by_id(session.id)
    assert stored.updated_at == session.updated_at
    assert stored.updated_at > stored.created_at
    assert [s.id for s in await repos.sessions.find_by_user_id(user.id)] == [session.id]


@pytest.mark.asyncio
async def test_session_update_of_missing_row(repos: Repositories, clock: ManualClock) -> None:
    with pytest.raises(NotFoundError):
        await repos.sessions.update(Session.create(UserID.generate()))


@pytest.mark.asyncio
async def test_session_requires_existing_user(repos: Repositories, clock: ManualClock) -> None:
    with pytest.raises(BackendError):
        await repos.sessions.create(Session.create(UserID.generate()))


@pytest.mark.asyncio
async def test_messages_in_creation_order(repos: Repositories, clock: ManualClock) -> None:
    _, session = await _user_with_session(repos)
    first = Message.user_message(session.id, "hi")
    second = Message.assistant_message(session.id, "hello")
    await repos.messages.create(first)
    await repos.messages.create(second)

    messages = await repos.messages.find_by_session_id(session.id)
    assert [m.content for m in messages] == ["hi", "hello"]
    assert [m.role.value for m in messages] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_delete_messages_by_session(repos: Repositories, clock: ManualClock) -> None:
    _, session = await _user_with_session(repos)
    for content in ("a", "b", "c"):
        await repos.messages.create(Message.user_message(session.id, content))

    assert await repos.messages.delete_by_session_id(session.id) == 3
    assert await repos.messages.find_by_session_id(session.id) == []
    assert await repos.messages.delete_by_session_id(session.id) == 0


@pytest.mark.asyncio
async def test_delete_single_message(repos: Repositories, clock: ManualClock) -> None:
    _, session = await _user_with_session(repos)
    message = Message.system_message(session.id, "rules")
    await repos.messages.create(message)
    await repos.messages.delete(message.id)
    with pytest.raises(NotFoundError):
        await repos.messages.delete(message.id)


# =============================================================================
# Tasks
# =============================================================================


@pytest.mark.asyncio
async def test_task_lifecycle_is_persisted(
    repos: Repositories, database: Database, clock: ManualClock
) -> None:
    _, session = await _user_with_session(repos)
    task = Task.create(session.id, "echo", '{"x":1}')
    await repos.tasks.create(task)

    task.set_running()
    await repos.tasks.update(task)
    task.set_completed('{"y":2}')
    await repos.tasks.update(task)

    stored = await repos.tasks.find_by_id(task.id)
    assert stored.status is TaskStatus.COMPLETED
    assert stored.output == '{"y":2}'
    assert stored.is_terminal

    async with database.session() as db_session:
        row = (
            await db_session.execute(
                text("SELECT status, output, error FROM tasks WHERE id = :id"),
                {"id": str(task.id)},
            )
        ).one()
    assert row.status == "completed"
    assert row.output == '{"y":2}'
    assert row.error is None


@pytest.mark.asyncio
async def test_failed_task_stores_error(repos: Repositories, clock: ManualClock) -> None:
    _, session = await _user_with_session(repos)
    task = Task.create(session.id, "echo", "{}")
    await repos.tasks.create(task)
    task.set_failed("skill not registered")
    await repos.tasks.update(task)

    stored = await repos.tasks.find_by_id(task.id)
    assert stored.is_failed
    assert stored.error == "skill not registered"
    assert stored.output == ""


@pytest.mark.asyncio
async def test_tasks_newest_first(repos: Repositories, clock: ManualClock) -> None:
    _, session = await _user_with_session(repos)
    tasks = [Task.create(session.id, f"skill-{i}", "{}") for i in range(3)]
    for task in tasks:
        await repos.tasks.create(task)

    found = await repos.tasks.find_by_session_id(session.id)
    assert [t.skill for t in found] == ["skill-2", "skill-1", "skill-0"]
    assert await repos.tasks.find_by_session_id(SessionID("other")) == []


@pytest.mark.asyncio
async def test_task_update_and_delete_of_missing_row(repos: Repositories, clock: ManualClock) -> None:
    task = Task.create(SessionID.generate(), "echo", "{}")
    with pytest.raises(NotFoundError):
        await repos.tasks.update(task)
    with pytest.raises(NotFoundError):
        await repos.tasks.delete(task.id)


# =============================================================================
# Skills and schedules
# =============================================================================


@pytest.mark.asyncio
async def test_skill_crud(repos: Repositories, clock: ManualClock) -> None:
    skill = Skill.create("echo", "1.0.0", "/skills/echo", ["network"], {"timeout": 10})
    await repos.skills.create(skill)
    assert await repos.skills.find_by_name("echo") == skill

    skill.update(version="1.1.0", permissions=["network", "shell"])
    await repos.skills.update(skill)
    stored = await repos.skills.find_by_id(skill.id)
    assert stored.version == Version("1.1.0")
    assert stored.permission_list() == ["network", "shell"]
    assert stored.timeout_seconds() == 10

    with pytest.raises(ConflictError):
        await repos.skills.create(Skill.create("echo", "2.0.0", "/elsewhere"))

    await repos.skills.delete(skill.id)
    with pytest.raises(NotFoundError):
        await repos.skills.find_by_name("echo")


@pytest.mark.asyncio
async def test_skills_listed_newest_first(repos: Repositories, clock: ManualClock) -> None:
    for name in ("a", "b", "c"):
        await repos.skills.create(Skill.create(name, "1.0.0", f"/skills/{name}"))
    assert [s.name for s in await repos.skills.list()] == ["c", "b", "a"]


@pytest.mark.asyncio
async def test_schedules(repos: Repositories, clock: ManualClock) -> None:
    await repos.skills.create(Skill.create("echo", "1.0.0", "/skills/echo"))
    await repos.skills.create(Skill.create("report", "1.0.0", "/skills/report"))
    hourly = Schedule.create("echo", "0 * * * *", "{}")
    nightly = Schedule.create("report", "0 2 * * *", '{"full":true}')
    paused = Schedule.create("echo", "*/5 * * * *", "{}")
    paused.disable()
    for schedule in (hourly, nightly, paused):
        await repos.schedules.create(schedule)

    assert {s.id for s in await repos.schedules.find_by_skill("echo")} == {hourly.id, paused.id}
    assert {s.id for s in await repos.schedules.find_enabled()} == {hourly.id, nightly.id}
    assert [s.id for s in await repos.schedules.list()] == [paused.id, nightly.id, hourly.id]

    paused.enable()
    paused.reschedule("*/10 * * * *")
    await repos.schedules.update(paused)
    stored = await repos.schedules.find_by_id(paused.id)
    assert stored.enabled
    assert str(stored.cron) == "*/10 * * * *"


@pytest.mark.asyncio
async def test_deleting_skill_cascades_to_schedules(repos: Repositories, clock: ManualClock) -> None:
    skill = Skill.create("echo", "1.0.0", "/skills/echo")
    await repos.skills.create(skill)
    schedule = Schedule.create("echo", "0 * * * *", "{}")
    await repos.schedules.create(schedule)

    await repos.skills.delete(skill.id)
    with pytest.raises(NotFoundError):
        await repos.schedules.find_by_id(schedule.id)


@pytest.mark.asyncio
async def test_schedule_requires_registered_skill(repos: Repositories, clock: ManualClock) -> None:
    with pytest.raises(BackendError):
        await repos.schedules.create(Schedule.create("ghost", "0 * * * *", "{}"))


# =============================================================================
# Logs
# =============================================================================


@pytest.mark.asyncio
async def test_log_queries(repos: Repositories, clock: ManualClock) -> None:
    entries = [
        Log.create("info", "api", "started"),
        Log.create("error", "runtime", "crashed", {"code": 1}),
        Log.create("info", "scheduler", "tick"),
        Log.create("warn", "api", "slow"),
        Log.create("info", "api", "stopped"),
    ]
    for entry in entries:
        await repos.logs.create(entry)

    infos = await repos.logs.find_by_level(LogLevel.INFO, 10)
    assert [log.message for log in infos] == ["stopped", "tick", "started"]
    assert [log.message for log in await repos.logs.find_by_level("info", 2)] == ["stopped", "tick"]

    api = await repos.logs.find_by_source("api", 10)
    assert [log.message for log in api] == ["stopped", "slow", "started"]

    assert await repos.logs.count_by_level("info") == 3
    assert await repos.logs.count_by_level(LogLevel.DEBUG) == 0

    stored = await repos.logs.find_by_id(entries[1].id)
    assert stored.metadata_dict() == {"code": 1}


@pytest.mark.asyncio
async def test_log_date_range_is_inclusive(repos: Repositories) -> None:
    start = datetime(2026, 2, 1, tzinfo=UTC)
    clock = ManualClock(start, step=timedelta(hours=1))
    with use_clock(clock):
        entries = [Log.create("info", "api", f"m{i}") for i in range(5)]
    for entry in entries:
        await repos.logs.create(entry)

    found = await repos.logs.find_by_date_range(
        start + timedelta(hours=1), start + timedelta(hours=3), 10
    )
    assert [log.message for log in found] == ["m3", "m2", "m1"]

    limited = await repos.logs.find_by_date_range(start, start + timedelta(hours=4), 2)
    assert [log.message for log in limited] == ["m4", "m3"]


@pytest.mark.asyncio
async def test_delete_older_than(repos: Repositories) -> None:
    start = datetime(2026, 2, 1, tzinfo=UTC)
    clock = ManualClock(start, step=timedelta(days=1))
    with use_clock(clock):
        entries = [Log.create("debug", "gc", f"day{i}") for i in range(4)]
    for entry in entries:
        await repos.logs.create(entry)

    removed = await repos.logs.delete_older_than(start + timedelta(days=2))
    assert removed == 2
    remaining = await repos.logs.find_by_source("gc", 10)
    assert [log.message for log in remaining] == ["day3", "day2"]


@pytest.mark.asyncio
async def test_log_limit_must_be_positive(repos: Repositories) -> None:
    with pytest.raises(ValidationError):
        await repos.logs.find_by_level("info", 0)


@pytest.mark.asyncio
async def test_log_delete(repos: Repositories, clock: ManualClock) -> None:
    log = Log.create("info", "api", "bye")
    await repos.logs.create(log)
    await repos.logs.delete(log.id)
    with pytest.raises(NotFoundError):
        await repos.logs.find_by_id(log.id)


@pytest.mark.asyncio
async def test_skill_and_schedule_update_of_missing_row(
    repos: Repositories, clock: ManualClock
) -> None:
    skill = Skill.create("ghost", "1.0.0", "/skills/ghost")
    with pytest.raises(NotFoundError):
        await repos.skills.update(skill)

    await repos.skills.create(skill)
    schedule = Schedule.create("ghost", "0 * * * *", "{}")
    with pytest.raises(NotFoundError):
        await repos.schedules.update(schedule)
