"""Run coordinator -- drives one agent execution from start to terminal state.

The coordinator manages the full lifecycle of a single run bound to one
session:

1. **Start**: Register the run, mark the session running, emit the status
   and the user prompt, schedule the run task
2. **Execute**: Stream engine messages, gate every tool use through the
   permission broker, forward messages as protocol events
3. **Finalize**: Emit exactly one terminal status, remove ephemeral engine
   artifacts, unregister the run

The caller (session manager) is responsible for:

- Creating the session record
- Rejecting a start while the session is already running
- Publishing events to observers (the ``emit`` sink)

Engine exceptions stop here: everything upstream only ever sees status
events.  A cancelled run is not an error.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from agentgate.agent_runtime.execution.cancellation import CancellationToken
from agentgate.agent_runtime.execution.cleanup import cleanup_ephemeral_dirs
from agentgate.agent_runtime.execution.engine import EngineRequest
from agentgate.agent_runtime.models.enums import SessionStatus
from agentgate.agent_runtime.models.events import (
    ProtocolEvent,
    message_event,
    status_event,
    user_prompt_event,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from agentgate.agent_runtime.context import RuntimeSession
    from agentgate.agent_runtime.execution.engine import AgentEngine
    from agentgate.agent_runtime.execution.permissions import PermissionBroker
    from agentgate.agent_runtime.models.permission import PermissionDecision
    from agentgate.agent_runtime.registry import SessionRegistry
    from agentgate.agent_runtime.settings import GateSettings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result / handle
# ---------------------------------------------------------------------------


@dataclass
class RunResult:
    """Outcome of a finished run."""

    session_id: str
    status: SessionStatus
    error: str | None = None
    cancelled: bool = False


class RunHandle:
    """Caller-side control of one run."""

    def __init__(self, session_id: str, cancellation: CancellationToken) -> None:
        self.session_id = session_id
        self.cancellation = cancellation
        self._task: asyncio.Task[RunResult] | None = None

    def cancel(self) -> None:
        """Stop the run.  Pending permission requests resolve to deny."""
        if self.cancellation.cancel():
            logger.info("Run for session %s cancelled", self.session_id)

    async def wait(self) -> RunResult:
        """Wait for the run to finish and return its outcome."""
        if self._task is None:
            msg = "Run has not been started"
            raise RuntimeError(msg)
        return await asyncio.shield(self._task)


# ---------------------------------------------------------------------------
# Message helpers
# ---------------------------------------------------------------------------


def _is_init(message: dict[str, Any]) -> bool:
    return message.get("type") == "system" and message.get("subtype") == "init"


def _is_result(message: dict[str, Any]) -> bool:
    return message.get("type") == "result"


def _result_status(message: dict[str, Any]) -> SessionStatus:
    return SessionStatus.COMPLETED if message.get("subtype") == "success" else SessionStatus.ERROR


async def _close_stream(stream: AsyncIterator[dict[str, Any]] | None) -> None:
    """Close an engine stream that was abandoned mid-iteration."""
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception:
        logger.debug("Engine stream did not close cleanly", exc_info=True)


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class RunCoordinator:
    """Owns one run of one session.  Not reusable."""

    def __init__(
        self,
        session: RuntimeSession,
        *,
        engine: AgentEngine,
        broker: PermissionBroker,
        registry: SessionRegistry,
        emit: Callable[[ProtocolEvent], None],
        settings: GateSettings,
    ) -> None:
        self._session = session
        self._engine = engine
        self._broker = broker
        self._registry = registry
        self._emit = emit
        self._settings = settings
        self._handle: RunHandle | None = None
        self._terminal_emitted = False

    # -- Start -----------------------------------------------------------------

    def start(self, prompt: str, resume_token: str | None = None) -> RunHandle:
        """Begin the run in the background and return its handle.

        Raises ``ShuttingDownError`` (from the registry) before touching the
        session if the process is shutting down.
        """
        if self._handle is not None:
            msg = "RunCoordinator instances run exactly once"
            raise RuntimeError(msg)

        session = self._session
        handle = RunHandle(session.session_id, CancellationToken())
        self._registry.register_run(handle)
        self._handle = handle
        session.handle = handle
        session.last_prompt = prompt

        self._set_status(SessionStatus.RUNNING)
        self._publish(user_prompt_event(session.session_id, prompt))

        handle._task = asyncio.create_task(
            self._run(prompt, resume_token, handle.cancellation),
            name=f"run-{session.session_id}",
        )
        return handle

    # -- Execute ---------------------------------------------------------------

    async def _run(self, prompt: str, resume_token: str | None, cancellation: CancellationToken) -> RunResult:
        session = self._session
        cwd = session.cwd or self._settings.default_cwd
        request = EngineRequest(
            prompt=prompt,
            cwd=cwd,
            cancellation=cancellation,
            additional_directories=list(session.additional_directories),
            model=self._settings.resolve_model(session.model),
            resume=resume_token,
        )

        async def gate(tool_name: str, tool_input: Any, tool_use_id: str | None) -> PermissionDecision:
            return await self._broker.decide(session.session_id, tool_name, tool_input, cancellation, tool_use_id)

        error: str | None = None
        stream: AsyncIterator[dict[str, Any]] | None = None
        try:
            stream = self._engine.stream(request, gate)
            async for message in stream:
                if cancellation.cancelled:
                    # Late messages from an interrupted engine are dropped.
                    break
                self._handle_message(message)
                if _is_result(message):
                    break

            if cancellation.cancelled:
                self._finish_cancelled()
            elif session.status == SessionStatus.RUNNING and not self._terminal_emitted:
                # Stream ended without a result message.
                self._set_terminal(SessionStatus.COMPLETED)

        except asyncio.CancelledError:
            # Task cancelled from outside (forced shutdown).
            cancellation.cancel()
            self._finish_cancelled()
            raise

        except Exception as exc:
            if cancellation.cancelled:
                logger.info("Engine stopped after cancellation for session %s: %s", session.session_id, exc)
                self._finish_cancelled()
            else:
                logger.exception("Run for session %s failed", session.session_id)
                error = str(exc)
                if not self._terminal_emitted:
                    self._set_terminal(SessionStatus.ERROR, error=error)

        finally:
            await _close_stream(stream)
            await cleanup_ephemeral_dirs(cwd)
            self._registry.unregister_run(self._handle)
            if session.handle is self._handle:
                session.handle = None

        logger.info(
            "Run for session %s finished: status=%s, cancelled=%s",
            session.session_id,
            session.status,
            cancellation.cancelled,
        )
        return RunResult(
            session_id=session.session_id,
            status=session.status,
            error=error,
            cancelled=cancellation.cancelled,
        )

    def _handle_message(self, message: dict[str, Any]) -> None:
        session = self._session
        if _is_init(message):
            token = message.get("session_id")
            if token:
                session.engine_session_id = token
                logger.debug("Session %s bound to engine session %s", session.session_id, token)

        self._publish(message_event(session.session_id, message))

        if _is_result(message) and not self._terminal_emitted:
            status = _result_status(message)
            error = None if status == SessionStatus.COMPLETED else str(message.get("subtype"))
            self._set_terminal(status, error=error)

    # -- Finalize --------------------------------------------------------------

    def _finish_cancelled(self) -> None:
        # Only report the stop if nothing terminal was emitted yet.
        if self._session.status == SessionStatus.RUNNING and not self._terminal_emitted:
            self._set_terminal(SessionStatus.COMPLETED)

    def _set_terminal(self, status: SessionStatus, *, error: str | None = None) -> None:
        self._terminal_emitted = True
        self._set_status(status, error=error)

    def _set_status(self, status: SessionStatus, *, error: str | None = None) -> None:
        session = self._session
        if session.deleted:
            return
        session.status = status
        session.touch()
        self._emit(status_event(session.session_id, status, title=session.title, cwd=session.cwd, error=error))

    def _publish(self, event: ProtocolEvent) -> None:
        if not self._session.deleted:
            self._emit(event)
