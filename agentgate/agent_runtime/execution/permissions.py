"""Permission broker -- gates tool invocations on human authorization.

The broker is consulted once per tool-use request:

1. Compute the **permission key**: the tool name, or ``Bash:dangerous`` for a
   shell command matching a destructive pattern.  Safe and destructive
   commands are therefore authorized independently.
2. Auto-approve if the session already granted that key.
3. Auto-approve tools outside the gated set (read-only inspection, search).
4. Otherwise emit a ``permission.request`` event, register a pending entry on
   the session and suspend until a human decision or the run's cancellation
   resolves it.

The destructive-command check is a best-effort heuristic over the raw
command text, not a security boundary.

The broker never raises: every path ends in an explicit ``Allow`` or
``Deny``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from agentgate.agent_runtime.context import PendingPermission
from agentgate.agent_runtime.models.events import ProtocolEvent, permission_request_event
from agentgate.agent_runtime.models.permission import ABORTED_REASON, Allow, Deny, PermissionDecision

if TYPE_CHECKING:
    from agentgate.agent_runtime.context import RuntimeSession
    from agentgate.agent_runtime.execution.cancellation import CancellationToken
    from agentgate.agent_runtime.registry import SessionRegistry

logger = logging.getLogger(__name__)

EventSink = Callable[[ProtocolEvent], None]

# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

COMMAND_TOOL = "Bash"

# Tools that always need authorization (absent a session grant).
GATED_TOOLS: frozenset[str] = frozenset({
    "Write",
    "Edit",
    "MultiEdit",
    COMMAND_TOOL,
    "AskUserQuestion",
})

DANGEROUS_COMMAND_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\brm\s+",
        r"\brmdir\s+",
        r"\bdel\s+",  # Windows del
        r"\brd\s+",  # Windows rd
        r"\bRemove-Item\b",  # PowerShell
        r"\bri\s+",  # PowerShell alias
        r"\brm\s+-rf?\b",
        r"\bunlink\b",
    )
)

DUPLICATE_REQUEST_REASON = "Duplicate permission request"
UNKNOWN_SESSION_REASON = "Unknown session"


def _command_text(tool_input: Any) -> str:
    if isinstance(tool_input, dict):
        command = tool_input.get("command")
        if isinstance(command, str):
            return command
    return ""


def is_dangerous_command(tool_name: str, tool_input: Any) -> bool:
    if tool_name != COMMAND_TOOL:
        return False
    command = _command_text(tool_input)
    return any(pattern.search(command) for pattern in DANGEROUS_COMMAND_PATTERNS)


def permission_key(tool_name: str, tool_input: Any) -> str:
    """Key under which a session-scoped grant is recorded."""
    if is_dangerous_command(tool_name, tool_input):
        return f"{tool_name}:dangerous"
    return tool_name


def requires_permission(tool_name: str, tool_input: Any) -> bool:
    return tool_name in GATED_TOOLS or is_dangerous_command(tool_name, tool_input)


def _allow(tool_input: Any, *, persist: bool = False) -> Allow:
    # Engines only accept mapping inputs back.
    updated_input = tool_input if isinstance(tool_input, dict) else None
    return Allow(updated_input=updated_input, persist=persist)


# ---------------------------------------------------------------------------
# Broker
# ---------------------------------------------------------------------------


class PermissionBroker:
    """Decides tool-use requests and owns the pending-decision tables.

    One broker serves the whole process; per-session state (grants and
    pending entries) lives on the ``RuntimeSession`` records it looks up in
    the registry.
    """

    def __init__(self, registry: SessionRegistry, emit: EventSink) -> None:
        self._registry = registry
        self._emit = emit

    async def decide(
        self,
        session_id: str,
        tool_name: str,
        tool_input: Any,
        cancellation: CancellationToken,
        tool_use_id: str | None = None,
    ) -> PermissionDecision:
        """Return a decision for one tool use, suspending if a human must decide."""
        session = self._registry.get(session_id)
        if session is None:
            logger.warning("Permission request for unknown session %s (tool=%s)", session_id, tool_name)
            return Deny(reason=UNKNOWN_SESSION_REASON)

        key = permission_key(tool_name, tool_input)
        if key in session.allowed_permission_keys:
            logger.debug("Auto-approved %s for session %s (granted key %s)", tool_name, session_id, key)
            return _allow(tool_input)

        if not requires_permission(tool_name, tool_input):
            return _allow(tool_input)

        if cancellation.cancelled:
            return Deny(reason=ABORTED_REASON)

        tool_use_id = tool_use_id or str(uuid.uuid4())
        if tool_use_id in session.pending_permissions:
            logger.warning("Rejected duplicate permission request %s for session %s", tool_use_id, session_id)
            return Deny(reason=DUPLICATE_REQUEST_REASON)

        pending = PendingPermission(
            tool_use_id=tool_use_id,
            tool_name=tool_name,
            input=tool_input,
            permission_key=key,
            future=asyncio.get_running_loop().create_future(),
        )
        session.pending_permissions[tool_use_id] = pending
        logger.info("Requesting permission for %s (session=%s, tool_use_id=%s)", tool_name, session_id, tool_use_id)
        self._emit(permission_request_event(session_id, tool_use_id, tool_name, tool_input))

        remove_callback = cancellation.add_callback(lambda: self._abort(session, pending))
        try:
            return await pending.future
        finally:
            remove_callback()
            self._discard(session, pending)

    def submit(self, session_id: str, tool_use_id: str, decision: PermissionDecision) -> bool:
        """Apply a human decision.  Returns ``False`` if nothing was pending under that id."""
        session = self._registry.get(session_id)
        if session is None:
            return False
        pending = session.pending_permissions.get(tool_use_id)
        if pending is None or pending.resolved:
            logger.debug("Ignoring decision for unknown tool_use_id %s (session=%s)", tool_use_id, session_id)
            return False

        if isinstance(decision, Allow):
            if decision.persist:
                session.allowed_permission_keys.add(pending.permission_key)
                logger.info("Granted %s for the rest of session %s", pending.permission_key, session_id)
            if decision.updated_input is None:
                decision = _allow(pending.input, persist=decision.persist)

        self._discard(session, pending)
        return pending.resolve(decision)

    def outstanding(self, session_id: str) -> list[PendingPermission]:
        session = self._registry.get(session_id)
        if session is None:
            return []
        return list(session.pending_permissions.values())

    # -- Internals -------------------------------------------------------------

    def _abort(self, session: RuntimeSession, pending: PendingPermission) -> None:
        self._discard(session, pending)
        if pending.resolve(Deny(reason=ABORTED_REASON)):
            logger.info("Permission request %s aborted (session=%s)", pending.tool_use_id, session.session_id)

    @staticmethod
    def _discard(session: RuntimeSession, pending: PendingPermission) -> None:
        if session.pending_permissions.get(pending.tool_use_id) is pending:
            del session.pending_permissions[pending.tool_use_id]
