"""Timeline view models.

Reducer functions never mutate these in place; every transition returns a
new object built with ``model_copy``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from agentgate.agent_runtime.models.enums import SessionStatus
from agentgate.agent_runtime.models.permission import PermissionRequest


class PartialMessage(BaseModel):
    """Streaming text of the content block currently being generated."""

    text: str = ""
    active: bool = False


class SessionView(BaseModel):
    """Everything an observer displays for one session."""

    id: str
    title: str = ""
    status: SessionStatus = SessionStatus.IDLE
    cwd: str | None = None
    additional_directories: list[str] = Field(default_factory=list)

    messages: list[dict[str, Any]] = Field(default_factory=list)
    """Engine messages and ``user_prompt`` entries, in arrival order."""

    permission_requests: list[PermissionRequest] = Field(default_factory=list)
    workspace_files: list[str] = Field(default_factory=list)
    """Files written or edited by the agent, first-seen order, no duplicates."""

    partial: PartialMessage = Field(default_factory=PartialMessage)
    last_prompt: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    hydrated: bool = False
    """True once a ``session.history`` snapshot has been applied."""

    @property
    def recency(self) -> datetime:
        return self.updated_at or self.created_at or datetime.min


class TimelineState(BaseModel):
    sessions: dict[str, SessionView] = Field(default_factory=dict)
    active_session_id: str | None = None

    pending_start: bool = False
    """A new session was requested; the next status event selects it."""

    global_error: str | None = None
    sessions_loaded: bool = False
    history_requested: frozenset[str] = frozenset()
