"""Shared enumerations used across the agent runtime."""

from __future__ import annotations

from enum import StrEnum

# -- Session -----------------------------------------------------------------


class SessionStatus(StrEnum):
    """Session status as seen by observers.

    Transitions are monotonic per run: idle -> running -> completed | error.
    """

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class ModelAlias(StrEnum):
    SONNET = "sonnet"
    OPUS = "opus"
    HAIKU = "haiku"


# -- Events ------------------------------------------------------------------


class EventType(StrEnum):
    """Protocol event types emitted to observers."""

    # Run content
    STREAM_MESSAGE = "stream.message"
    STREAM_USER_PROMPT = "stream.user_prompt"

    # Gating
    PERMISSION_REQUEST = "permission.request"

    # Lifecycle
    SESSION_STATUS = "session.status"
    SESSION_DELETED = "session.deleted"
    RUNNER_ERROR = "runner.error"

    # Snapshots (command responses)
    SESSION_LIST = "session.list"
    SESSION_HISTORY = "session.history"
