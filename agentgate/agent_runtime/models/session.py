"""Session snapshot models.

These are the serialisable views of a ``RuntimeSession`` handed to observers
in ``session.list`` snapshots.  The live record itself lives in
``agentgate.agent_runtime.context``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from agentgate.agent_runtime.models.enums import SessionStatus


class SessionInfo(BaseModel):
    """One entry of a session list snapshot."""

    id: str
    title: str
    status: SessionStatus = SessionStatus.IDLE
    cwd: str | None = None
    additional_directories: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
