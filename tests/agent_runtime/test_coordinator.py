"""Unit tests for the run coordinator."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from agentgate.agent_runtime.execution.coordinator import RunCoordinator, RunHandle
from agentgate.agent_runtime.models.enums import EventType, SessionStatus
from agentgate.agent_runtime.models.events import ProtocolEvent
from agentgate.agent_runtime.models.permission import ABORTED_REASON, Allow, Deny
from agentgate.agent_runtime.registry import ShuttingDownError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _init(token: str = "abc") -> dict[str, Any]:
    return {"type": "system", "subtype": "init", "session_id": token}


def _assistant(text: str = "hello") -> dict[str, Any]:
    return {"type": "assistant", "message": {"role": "assistant", "content": [{"type": "text", "text": text}]}}


def _result(subtype: str = "success") -> dict[str, Any]:
    return {"type": "result", "subtype": subtype, "session_id": "abc", "is_error": subtype != "success"}


def _statuses(events: list[ProtocolEvent]) -> list[SessionStatus]:
    return [e.payload["status"] for e in events if e.event_type == EventType.SESSION_STATUS]


def _messages(events: list[ProtocolEvent]) -> list[dict[str, Any]]:
    return [e.payload["message"] for e in events if e.event_type == EventType.STREAM_MESSAGE]


@pytest.fixture
def session(registry, tmp_path: Path):
    return registry.create(title="Test session", cwd=str(tmp_path))


@pytest.fixture
def start(session, broker, registry, events, settings):
    def _start(engine, prompt: str = "do things", resume_token: str | None = None) -> RunHandle:
        coordinator = RunCoordinator(
            session,
            engine=engine,
            broker=broker,
            registry=registry,
            emit=events.append,
            settings=settings,
        )
        return coordinator.start(prompt, resume_token)

    return _start


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def test_successful_run_event_order(start, session, events, registry, make_engine) -> None:
    engine = make_engine(_init("abc"), _assistant(), _result())
    handle = start(engine)

    result = await handle.wait()

    assert result.status == SessionStatus.COMPLETED
    assert result.cancelled is False
    assert [e.event_type for e in events] == [
        EventType.SESSION_STATUS,
        EventType.STREAM_USER_PROMPT,
        EventType.STREAM_MESSAGE,
        EventType.STREAM_MESSAGE,
        EventType.STREAM_MESSAGE,
        EventType.SESSION_STATUS,
    ]
    assert _statuses(events) == [SessionStatus.RUNNING, SessionStatus.COMPLETED]
    assert all(e.session_id == session.session_id for e in events)
    assert session.engine_session_id == "abc"
    assert session.handle is None
    assert registry.active_count == 0


async def test_start_marks_running_synchronously(start, session, events, make_engine) -> None:
    handle = start(make_engine(_result()), prompt="hi there")

    # Before the task gets a chance to run.
    assert session.status == SessionStatus.RUNNING
    assert session.last_prompt == "hi there"
    assert events[0].payload["status"] == SessionStatus.RUNNING
    assert events[0].payload["title"] == "Test session"
    assert events[1].payload == {"prompt": "hi there"}

    await handle.wait()


async def test_error_result_subtype_emits_error(start, events, make_engine) -> None:
    handle = start(make_engine(_init(), _result("error_max_turns")))

    result = await handle.wait()

    assert result.status == SessionStatus.ERROR
    assert _statuses(events) == [SessionStatus.RUNNING, SessionStatus.ERROR]


async def test_stream_exhausted_without_result_completes(start, events, make_engine) -> None:
    handle = start(make_engine(_init(), _assistant()))

    result = await handle.wait()

    assert result.status == SessionStatus.COMPLETED
    assert _statuses(events) == [SessionStatus.RUNNING, SessionStatus.COMPLETED]


async def test_engine_exception_emits_error_status(start, session, events, make_engine) -> None:
    handle = start(make_engine(_init(), RuntimeError("engine exploded")))

    result = await handle.wait()

    assert result.status == SessionStatus.ERROR
    assert result.error == "engine exploded"
    last = events[-1]
    assert last.event_type == EventType.SESSION_STATUS
    assert last.payload["status"] == SessionStatus.ERROR
    assert last.payload["error"] == "engine exploded"
    assert session.status == SessionStatus.ERROR


async def test_terminal_status_is_last_event(start, events, make_engine) -> None:
    # Anything after the result message is not forwarded.
    handle = start(make_engine(_init(), _result(), _assistant("late")))

    await handle.wait()

    assert events[-1].event_type == EventType.SESSION_STATUS
    assert _statuses(events).count(SessionStatus.COMPLETED) == 1
    assert _assistant("late") not in _messages(events)


# ---------------------------------------------------------------------------
# Engine request
# ---------------------------------------------------------------------------


async def test_engine_request_fields(start, session, settings, make_engine) -> None:
    session.model = "opus"
    session.additional_directories = ["/srv/shared"]
    engine = make_engine(_result())

    await start(engine, prompt="continue please", resume_token="tok-1").wait()

    request = engine.requests[0]
    assert request.prompt == "continue please"
    assert request.cwd == session.cwd
    assert request.additional_directories == ["/srv/shared"]
    assert request.model == settings.opus_model
    assert request.resume == "tok-1"


async def test_missing_cwd_falls_back_to_default(start, session, settings, make_engine) -> None:
    session.cwd = None
    engine = make_engine(_result())

    await start(engine).wait()

    assert engine.requests[0].cwd == settings.default_cwd


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


async def test_session_grant_scenario(start, session, broker, events, wait_until, make_engine) -> None:
    engine = make_engine(
        _init("abc"),
        ("tool", "Write", {"file_path": "/tmp/a.txt"}, "X"),
        ("tool", "Write", {"file_path": "/tmp/b.txt"}, "Y"),
        _result("success"),
    )
    handle = start(engine)

    await wait_until(lambda: "X" in session.pending_permissions)
    requests = [e for e in events if e.event_type == EventType.PERMISSION_REQUEST]
    assert [r.payload["tool_use_id"] for r in requests] == ["X"]
    # The tool has not been authorized yet.
    assert engine.decisions == []

    assert broker.submit(session.session_id, "X", Allow(persist=True)) is True
    await handle.wait()

    assert "Write" in session.allowed_permission_keys
    assert engine.decisions == [
        Allow(updated_input={"file_path": "/tmp/a.txt"}, persist=True),
        Allow(updated_input={"file_path": "/tmp/b.txt"}),
    ]
    # The second Write was auto-approved without a new prompt.
    assert len([e for e in events if e.event_type == EventType.PERMISSION_REQUEST]) == 1

    statuses = _statuses(events)
    assert statuses.count(SessionStatus.COMPLETED) == 1
    last_message_index = max(i for i, e in enumerate(events) if e.event_type == EventType.STREAM_MESSAGE)
    assert events[-1].payload["status"] == SessionStatus.COMPLETED
    assert len(events) - 1 > last_message_index


async def test_cancel_denies_pending_request(start, session, events, wait_until, make_engine) -> None:
    engine = make_engine(
        _init(),
        ("tool", "Write", {"file_path": "/tmp/a.txt"}, "X"),
        _result("success"),
    )
    handle = start(engine)
    await wait_until(lambda: "X" in session.pending_permissions)

    handle.cancel()
    result = await handle.wait()

    assert engine.decisions == [Deny(reason=ABORTED_REASON)]
    assert session.pending_permissions == {}
    assert result.cancelled is True
    assert SessionStatus.ERROR not in _statuses(events)
    assert _statuses(events) == [SessionStatus.RUNNING, SessionStatus.COMPLETED]


async def test_cancel_drops_late_messages_and_closes_stream(start, events, make_engine) -> None:
    engine = make_engine(_init(), ("wait_cancel",), _assistant("late"), _result())
    handle = start(engine)
    await asyncio.sleep(0.01)

    handle.cancel()
    result = await handle.wait()

    assert result.cancelled is True
    assert _assistant("late") not in _messages(events)
    assert engine.closed == 1


async def test_cancel_is_idempotent(start, events, make_engine) -> None:
    handle = start(make_engine(_init(), ("wait_cancel",)))
    await asyncio.sleep(0.01)

    handle.cancel()
    handle.cancel()
    await handle.wait()

    assert _statuses(events) == [SessionStatus.RUNNING, SessionStatus.COMPLETED]


async def test_forced_task_cancellation_is_not_an_error(start, session, events, registry, wait_until, make_engine) -> None:
    engine = make_engine(_init(), ("tool", "Bash", {"command": "ls"}, "X"))
    handle = start(engine)
    await wait_until(lambda: "X" in session.pending_permissions)

    handle._task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await handle.wait()

    assert handle.cancellation.cancelled
    assert SessionStatus.ERROR not in _statuses(events)
    assert session.pending_permissions == {}
    assert registry.active_count == 0


# ---------------------------------------------------------------------------
# Finalize
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "steps",
    [
        pytest.param((_init(), _result()), id="completed"),
        pytest.param((_init(), _result("error_max_turns")), id="error-result"),
        pytest.param((_init(), RuntimeError("boom")), id="engine-failure"),
    ],
)
async def test_cleanup_runs_when_run_ends(start, tmp_path: Path, make_engine, steps) -> None:
    (tmp_path / "tmpclaude-0a1b2c-cwd").mkdir()
    (tmp_path / "keep-me").mkdir()

    await start(make_engine(*steps)).wait()

    assert not (tmp_path / "tmpclaude-0a1b2c-cwd").exists()
    assert (tmp_path / "keep-me").exists()


async def test_cleanup_runs_after_cancel(start, session, tmp_path: Path, make_engine, wait_until) -> None:
    (tmp_path / "tmpclaude-ff00-cwd").mkdir()
    (tmp_path / "keep-me").mkdir()
    handle = start(make_engine(_init(), ("tool", "Write", {"file_path": "a.txt"}, "tu-1"), _result()))
    await wait_until(lambda: "tu-1" in session.pending_permissions)
    assert (tmp_path / "tmpclaude-ff00-cwd").exists()

    handle.cancel()
    result = await handle.wait()

    assert result.cancelled is True
    assert not (tmp_path / "tmpclaude-ff00-cwd").exists()
    assert (tmp_path / "keep-me").exists()

    assert not (tmp_path / "tmpclaude-0a1b2c-cwd").exists()
    assert (tmp_path / "keep-me").exists()


async def test_deleted_session_gets_no_status(start, session, registry, events, make_engine) -> None:
    handle = start(make_engine(_init(), ("wait_cancel",)))
    await asyncio.sleep(0.01)
    emitted_before = len(events)

    registry.remove(session.session_id)
    handle.cancel()
    await handle.wait()

    assert len(events) == emitted_before


async def test_start_refused_during_shutdown(start, session, registry, events, make_engine) -> None:
    registry.begin_shutdown()

    with pytest.raises(ShuttingDownError):
        start(make_engine(_result()))

    assert session.status == SessionStatus.IDLE
    assert events == []


async def test_coordinator_runs_once(session, broker, registry, events, settings, make_engine) -> None:
    coordinator = RunCoordinator(
        session,
        engine=make_engine(_result()),
        broker=broker,
        registry=registry,
        emit=events.append,
        settings=settings,
    )
    handle = coordinator.start("first")

    with pytest.raises(RuntimeError):
        coordinator.start("second")

    await handle.wait()
