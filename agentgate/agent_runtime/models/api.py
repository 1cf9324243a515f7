"""API request / response schemas for the session endpoints.

These thin schemas sit between HTTP and the session manager.  Decisions reuse
the domain variant from ``permission.py`` so the router never inspects loose
payload shapes.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from agentgate.agent_runtime.models.permission import PermissionDecision

# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class StartRunRequest(BaseModel):
    """Input for starting a run in a brand new session."""

    prompt: str = Field(min_length=1)
    cwd: str | None = None
    additional_directories: list[str] = Field(default_factory=list)
    title: str | None = Field(default=None, description="Optional; derived from the prompt if omitted.")
    model: str | None = Field(default=None, description="Model alias (sonnet, opus, haiku) or a full model id.")


class ContinueRunRequest(BaseModel):
    prompt: str = Field(min_length=1)


class DecisionRequest(BaseModel):
    """A human decision for one outstanding permission request."""

    tool_use_id: str
    decision: PermissionDecision


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class RunStartedResponse(BaseModel):
    session_id: str


class DecisionResponse(BaseModel):
    accepted: bool = Field(description="False when no outstanding request matched the tool-use id.")


class CancelResponse(BaseModel):
    cancelled: bool = Field(description="False when the session had no active run.")


class RecentCwdsResponse(BaseModel):
    cwds: list[str]
