"""Data models for the agent runtime."""

from agentgate.agent_runtime.models.api import (
    CancelResponse,
    ContinueRunRequest,
    DecisionRequest,
    DecisionResponse,
    RecentCwdsResponse,
    RunStartedResponse,
    StartRunRequest,
)
from agentgate.agent_runtime.models.enums import (
    EventType,
    ModelAlias,
    SessionStatus,
)
from agentgate.agent_runtime.models.events import ProtocolEvent
from agentgate.agent_runtime.models.permission import (
    Allow,
    Deny,
    PermissionDecision,
    PermissionRequest,
)
from agentgate.agent_runtime.models.session import SessionInfo

__all__ = [
    # Permissions
    "Allow",
    # API schemas
    "CancelResponse",
    "ContinueRunRequest",
    "DecisionRequest",
    "DecisionResponse",
    "Deny",
    # Enums
    "EventType",
    "ModelAlias",
    "PermissionDecision",
    "PermissionRequest",
    # Events
    "ProtocolEvent",
    "RecentCwdsResponse",
    "RunStartedResponse",
    # Session
    "SessionInfo",
    "SessionStatus",
    "StartRunRequest",
]
