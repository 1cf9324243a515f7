"""Protocol event models.

Every event shares one envelope; the ``payload`` shape depends on
``event_type``.  The constructors below are the only places payloads are
assembled, so producer and consumer agree on field names.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from agentgate.agent_runtime.models.enums import EventType, SessionStatus


class ProtocolEvent(BaseModel):
    """Wire-format event envelope sent over SSE."""

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event_type: EventType
    session_id: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)
    payload: dict[str, Any] = Field(default_factory=dict)


# -- Constructors --------------------------------------------------------------


def message_event(session_id: str, message: dict[str, Any]) -> ProtocolEvent:
    return ProtocolEvent(
        event_type=EventType.STREAM_MESSAGE,
        session_id=session_id,
        payload={"message": message},
    )


def user_prompt_event(session_id: str, prompt: str) -> ProtocolEvent:
    return ProtocolEvent(
        event_type=EventType.STREAM_USER_PROMPT,
        session_id=session_id,
        payload={"prompt": prompt},
    )


def permission_request_event(session_id: str, tool_use_id: str, tool_name: str, tool_input: Any) -> ProtocolEvent:
    return ProtocolEvent(
        event_type=EventType.PERMISSION_REQUEST,
        session_id=session_id,
        payload={"tool_use_id": tool_use_id, "tool_name": tool_name, "input": tool_input},
    )


def status_event(
    session_id: str,
    status: SessionStatus,
    *,
    title: str | None = None,
    cwd: str | None = None,
    error: str | None = None,
) -> ProtocolEvent:
    payload: dict[str, Any] = {"status": status, "title": title, "cwd": cwd}
    if error is not None:
        payload["error"] = error
    return ProtocolEvent(event_type=EventType.SESSION_STATUS, session_id=session_id, payload=payload)


def deleted_event(session_id: str) -> ProtocolEvent:
    return ProtocolEvent(event_type=EventType.SESSION_DELETED, session_id=session_id)


def runner_error_event(message: str, session_id: str | None = None) -> ProtocolEvent:
    return ProtocolEvent(
        event_type=EventType.RUNNER_ERROR,
        session_id=session_id,
        payload={"message": message},
    )


def session_list_event(sessions: list[dict[str, Any]]) -> ProtocolEvent:
    return ProtocolEvent(event_type=EventType.SESSION_LIST, payload={"sessions": sessions})


def session_history_event(
    session_id: str,
    status: SessionStatus,
    messages: list[dict[str, Any]],
) -> ProtocolEvent:
    return ProtocolEvent(
        event_type=EventType.SESSION_HISTORY,
        session_id=session_id,
        payload={"status": status, "messages": messages},
    )
