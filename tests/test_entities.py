import json
from datetime import timedelta

import pytest

from workflow_store.clock import ManualClock, use_clock
from workflow_store.entities import Log, Message, Schedule, Session, Skill, Task, User
from workflow_store.errors import (
    InvalidChannelError,
    InvalidCronExpressionError,
    InvalidTransitionError,
    InvalidVersionError,
    ValidationError,
)
from workflow_store.values import (
    Channel,
    LogLevel,
    MessageRole,
    SessionID,
    TaskStatus,
    UserID,
    Version,
)


def test_user_create(clock: ManualClock) -> None:
    user = User.create("telegram", "u1")
    assert user.channel is Channel.TELEGRAM
    assert user.channel_id == "u1"
    assert user.created_at.year == 2026

    other = User.create(Channel.TELEGRAM, "u2")
    assert user.id != other.id
    assert user.is_same_channel(other)
    assert not user.is_same_channel(User.create("web", "u1"))


def test_user_create_rejects_bad_input() -> None:
    with pytest.raises(InvalidChannelError):
        User.create("sms", "u1")
    with pytest.raises(ValidationError):
        User.create("web", "")


def test_user_has_no_entity_level_access_check() -> None:
    assert not hasattr(User, "can_access_session")


def test_session_touch_advances_updated_at(clock: ManualClock) -> None:
    user_id = UserID.generate()
    session = Session.create(user_id)
    assert session.updated_at == session.created_at
    before = session.updated_at
    session.touch()
    assert session.updated_at > before
    assert session.updated_at >= session.created_at
    assert session.is_owned_by(user_id)
    assert session.is_owned_by(str(user_id))
    assert not session.is_owned_by(UserID.generate())


def test_message_factories(clock: ManualClock) -> None:
    session_id = SessionID.generate()
    user_msg = Message.user_message(session_id, "hi")
    assistant_msg = Message.assistant_message(session_id, "hello")
    system_msg = Message.system_message(session_id, "be brief")

    assert user_msg.role is MessageRole.USER and user_msg.is_from_user
    assert assistant_msg.is_from_assistant and not assistant_msg.is_from_user
    assert system_msg.is_system
    assert user_msg.belongs_to_session(session_id)
    assert not user_msg.belongs_to_session(SessionID.generate())
    assert user_msg.created_at < assistant_msg.created_at


def test_message_is_immutable() -> None:
    message = Message.create(SessionID.generate(), "user", "hi")
    with pytest.raises(AttributeError):
        message.content = "changed"  # type: ignore[misc]


def test_task_happy_path(clock: ManualClock) -> None:
    task = Task.create(SessionID.generate(), "echo", '{"x":1}')
    assert task.is_pending and not task.is_terminal
    assert task.output == "" and task.error == ""

    created = task.updated_at
    task.set_running()
    assert task.is_running
    running_at = task.updated_at
    assert running_at > created

    task.set_completed('{"y":2}')
    assert task.status is TaskStatus.COMPLETED
    assert task.is_completed and task.is_terminal
    assert task.output == '{"y":2}'
    assert task.error == ""
    assert task.updated_at > running_at
    assert task.output_data() == {"y": 2}
    assert task.input_data() == {"x": 1}


def test_task_fails_while_running(clock: ManualClock) -> None:
    task = Task.create(SessionID.generate(), "echo", "{}")
    task.set_running()
    task.set_failed(RuntimeError("boom"))
    assert task.is_failed
    assert task.error == "boom"
    assert task.output == ""


def test_task_can_be_rejected_before_running(clock: ManualClock) -> None:
    task = Task.create(SessionID.generate(), "echo", "{}")
    before = task.updated_at
    task.set_failed("skill not found")
    assert task.is_failed
    assert task.updated_at > before


@pytest.mark.parametrize(
    ("setup", "transition"),
    [
        ([], lambda t: t.set_completed("x")),
        ([lambda t: t.set_running()], lambda t: t.set_running()),
        ([lambda t: t.set_running(), lambda t: t.set_completed("x")], lambda t: t.set_running()),
        ([lambda t: t.set_running(), lambda t: t.set_completed("x")], lambda t: t.set_failed("e")),
        ([lambda t: t.set_failed("e")], lambda t: t.set_completed("x")),
        ([lambda t: t.set_failed("e")], lambda t: t.set_running()),
    ],
)
def test_illegal_transitions_leave_task_unchanged(setup, transition, clock: ManualClock) -> None:
    task = Task.create(SessionID.generate(), "echo", "{}")
    for step in setup:
        step(task)
    snapshot = (task.status, task.output, task.error, task.updated_at)

    with pytest.raises(InvalidTransitionError):
        transition(task)
    assert (task.status, task.output, task.error, task.updated_at) == snapshot


def test_task_payload_helpers_tolerate_non_json() -> None:
    task = Task.create(SessionID.generate(), "echo", "plain text")
    assert task.input_data() is None
    assert task.output_data() is None


def test_skill_create_serializes_json(clock: ManualClock) -> None:
    skill = Skill.create(
        "web-search",
        "1.2.3",
        "/skills/web-search",
        permissions=["network"],
        metadata={"timeout": 45, "author": "ops"},
    )
    assert skill.version == Version("1.2.3")
    assert json.loads(skill.permissions) == ["network"]
    assert skill.permission_list() == ["network"]
    assert skill.metadata_dict() == {"timeout": 45, "author": "ops"}
    assert skill.requires_permission("network")
    assert not skill.requires_permission("shell")
    assert skill.requires_sandbox()
    assert skill.timeout_seconds() == 45


def test_skill_defaults() -> None:
    skill = Skill.create("echo", "0.1.0", "/skills/echo")
    assert skill.permissions == "[]"
    assert skill.metadata == "{}"
    assert not skill.requires_sandbox()
    assert skill.timeout_seconds() == 30


@pytest.mark.parametrize("permission", ["shell", "filesystem", "network", "system"])
def test_skill_sandbox_permissions(permission: str) -> None:
    skill = Skill.create("s", "1.0.0", "/s", permissions=["read", permission])
    assert skill.requires_sandbox()


def test_skill_timeout_ignores_non_numeric_values() -> None:
    skill = Skill.create("s", "1.0.0", "/s", metadata={"timeout": "soon"})
    assert skill.timeout_seconds() == 30
    skill.metadata = "not json"
    assert skill.metadata_dict() is None
    assert skill.timeout_seconds() == 30


def test_skill_update_mutable_fields() -> None:
    skill = Skill.create("s", "1.0.0", "/old")
    skill.update(version="1.1.0", location="/new", permissions=["shell"], metadata={"timeout": 5})
    assert skill.version == Version("1.1.0")
    assert skill.location == "/new"
    assert skill.permission_list() == ["shell"]
    assert skill.timeout_seconds() == 5

    skill.update(location="/newer")
    assert skill.version == Version("1.1.0")


def test_skill_rejects_bad_version() -> None:
    with pytest.raises(InvalidVersionError):
        Skill.create("s", "1.0", "/s")


def test_schedule_toggle_and_reschedule(clock: ManualClock) -> None:
    schedule = Schedule.create("echo", "0 9 * * 1-5", '{"x":1}')
    assert schedule.is_enabled()
    schedule.disable()
    assert not schedule.is_enabled()
    schedule.enable()
    assert schedule.enabled
    assert schedule.belongs_to_skill("echo")
    assert not schedule.belongs_to_skill("other")
    assert schedule.input_data() == {"x": 1}

    schedule.reschedule("*/5 * * * *")
    assert str(schedule.cron) == "*/5 * * * *"
    with pytest.raises(InvalidCronExpressionError):
        schedule.reschedule("61 * * * *")
    assert str(schedule.cron) == "*/5 * * * *"


def test_log_create(clock: ManualClock) -> None:
    log = Log.create("warn", "scheduler", "slow tick", {"ms": 1500})
    assert log.level is LogLevel.WARN
    assert log.is_warn and not log.is_error
    assert log.is_from_source("scheduler")
    assert log.metadata_dict() == {"ms": 1500}

    bare = Log.create(LogLevel.DEBUG, "api", "ping")
    assert bare.metadata == ""
    assert bare.metadata_dict() is None
    assert bare.is_debug


def test_timestamps_follow_the_clock() -> None:
    clock = ManualClock(step=timedelta(minutes=1))
    with use_clock(clock):
        first = Task.create(SessionID.generate(), "echo", "{}")
        second = Task.create(SessionID.generate(), "echo", "{}")
    assert second.created_at - first.created_at == timedelta(minutes=1)
