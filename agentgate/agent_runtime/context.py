"""Runtime session record.

``RuntimeSession`` is the single mutable record per session held by the
``SessionRegistry``.  Ownership of its fields is split:

- the Run Coordinator writes ``status``, ``engine_session_id`` and ``handle``;
- the Permission Broker writes ``allowed_permission_keys`` and
  ``pending_permissions``;
- the session manager writes everything else (creation, prompts, history).

All writers run on one event loop and never await mid-mutation, so no locks
are needed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from agentgate.agent_runtime.models.enums import SessionStatus
from agentgate.agent_runtime.models.permission import PermissionDecision
from agentgate.agent_runtime.models.session import SessionInfo

if TYPE_CHECKING:
    from agentgate.agent_runtime.execution.coordinator import RunHandle


@dataclass
class PendingPermission:
    """A suspended authorization decision awaiting exactly one resolution."""

    tool_use_id: str
    tool_name: str
    input: Any
    permission_key: str
    future: asyncio.Future[PermissionDecision]

    @property
    def resolved(self) -> bool:
        return self.future.done()

    def resolve(self, decision: PermissionDecision) -> bool:
        """Complete the suspended call.  Returns ``False`` if already resolved."""
        if self.future.done():
            return False
        self.future.set_result(decision)
        return True


@dataclass
class RuntimeSession:
    """In-memory state for one agent conversation bound to a working directory."""

    # -- Identity --------------------------------------------------------------
    session_id: str
    title: str
    cwd: str | None = None
    additional_directories: list[str] = field(default_factory=list)
    model: str | None = None

    # -- Lifecycle -------------------------------------------------------------
    status: SessionStatus = SessionStatus.IDLE
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    deleted: bool = False

    engine_session_id: str | None = None
    """Resume token reported by the engine's init message."""

    # -- Gating ----------------------------------------------------------------
    allowed_permission_keys: set[str] = field(default_factory=set)
    """Session-scoped grants.  Only ever grows."""

    pending_permissions: dict[str, PendingPermission] = field(default_factory=dict)

    # -- Timeline --------------------------------------------------------------
    last_prompt: str | None = None
    messages: list[dict[str, Any]] = field(default_factory=list)

    # -- Live references -------------------------------------------------------
    handle: RunHandle | None = None

    @property
    def is_running(self) -> bool:
        return self.status == SessionStatus.RUNNING

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def to_info(self) -> SessionInfo:
        return SessionInfo(
            id=self.session_id,
            title=self.title,
            status=self.status,
            cwd=self.cwd,
            additional_directories=list(self.additional_directories),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
