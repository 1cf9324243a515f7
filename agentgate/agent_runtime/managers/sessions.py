"""Session manager -- handles inbound commands against the live registry.

The SessionManager is a process-level singleton initialised in the app lifespan.
It coordinates between:

- **Registry**: session records and active run handles
- **Run Coordinator**: one per run, created here
- **Permission Broker**: human decisions are forwarded to it
- **Event Bus**: every outbound event passes through ``emit`` on its way out

``emit`` also records the session's message history so late observers can
rebuild a timeline with ``fetch_history``.

Rejected commands publish a ``runner.error`` event and raise; the router maps
the exception types to HTTP status codes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from agentgate.agent_runtime.execution.coordinator import RunCoordinator
from agentgate.agent_runtime.models.enums import EventType
from agentgate.agent_runtime.models.events import (
    ProtocolEvent,
    deleted_event,
    runner_error_event,
    session_history_event,
    session_list_event,
)
from agentgate.agent_runtime.registry import ShuttingDownError

if TYPE_CHECKING:
    from agentgate.agent_runtime.bus import EventBus
    from agentgate.agent_runtime.context import RuntimeSession
    from agentgate.agent_runtime.execution.engine import AgentEngine
    from agentgate.agent_runtime.execution.permissions import PermissionBroker
    from agentgate.agent_runtime.models.permission import PermissionDecision
    from agentgate.agent_runtime.registry import SessionRegistry
    from agentgate.agent_runtime.settings import GateSettings

DEFAULT_TITLE = "New Session"
MAX_TITLE_LENGTH = 30


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SessionNotFoundError(LookupError):
    """The session id is unknown (never created, or deleted)."""


class SessionBusyError(RuntimeError):
    """The session already has an active run."""


class NotResumableError(RuntimeError):
    """The engine has not reported a resume token for the session yet."""


def derive_title(prompt: str) -> str:
    """Short display title taken from the first prompt."""
    text = " ".join(prompt.split())
    if not text:
        return DEFAULT_TITLE
    if len(text) <= MAX_TITLE_LENGTH:
        return text
    return text[: MAX_TITLE_LENGTH - 3] + "..."


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Executes inbound commands.  Stateless beyond its collaborators."""

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        bus: EventBus,
        engine: AgentEngine,
        broker: PermissionBroker,
        settings: GateSettings,
    ) -> None:
        self._registry = registry
        self._bus = bus
        self._engine = engine
        self._broker = broker
        self._settings = settings

    # -- Outbound --------------------------------------------------------------

    def emit(self, event: ProtocolEvent) -> None:
        """Record *event* in its session's history, then publish it."""
        if event.session_id is not None:
            session = self._registry.get(event.session_id)
            if session is not None:
                _record(session, event)
        self._bus.publish(event)

    def _reject(self, error: Exception, session_id: str | None = None) -> Exception:
        message = str(error)
        logger.warning("Command rejected (session={}): {}", session_id, message)
        self._bus.publish(runner_error_event(message, session_id=session_id))
        return error

    def _require(self, session_id: str) -> RuntimeSession:
        session = self._registry.get(session_id)
        if session is None:
            raise self._reject(SessionNotFoundError(f"Unknown session: {session_id}"), session_id)
        return session

    # -- Runs ------------------------------------------------------------------

    def start_run(
        self,
        *,
        prompt: str,
        cwd: str | None = None,
        additional_directories: list[str] | None = None,
        title: str | None = None,
        model: str | None = None,
    ) -> RuntimeSession:
        """Create a session and start its first run."""
        if self._registry.is_shutting_down:
            raise self._reject(ShuttingDownError("Service is shutting down"))

        session = self._registry.create(
            title=title or derive_title(prompt),
            cwd=cwd or self._settings.default_cwd,
            additional_directories=additional_directories,
            model=model,
        )
        logger.info("Session created: {} (cwd={}, model={})", session.session_id, session.cwd, model)
        with logger.contextualize(session=session.session_id):
            self._coordinator(session).start(prompt)
        return session

    def continue_run(self, session_id: str, prompt: str) -> RuntimeSession:
        """Start a follow-up run that resumes the engine's context."""
        session = self._require(session_id)
        if session.is_running:
            raise self._reject(SessionBusyError(f"Session is still running: {session_id}"), session_id)
        if not session.engine_session_id:
            raise self._reject(NotResumableError(f"Session has no resume id yet: {session_id}"), session_id)
        if self._registry.is_shutting_down:
            raise self._reject(ShuttingDownError("Service is shutting down"), session_id)

        logger.info("Continuing session {} (resume={})", session_id, session.engine_session_id)
        with logger.contextualize(session=session_id):
            self._coordinator(session).start(prompt, resume_token=session.engine_session_id)
        return session

    def cancel_run(self, session_id: str) -> bool:
        """Cancel the active run.  Returns ``False`` if the session was idle."""
        session = self._require(session_id)
        handle = self._registry.get_run(session_id)
        if handle is None or not session.is_running:
            return False
        handle.cancel()
        return True

    def submit_decision(self, session_id: str, tool_use_id: str, decision: PermissionDecision) -> bool:
        """Forward a human decision.  Unknown ids are ignored."""
        accepted = self._broker.submit(session_id, tool_use_id, decision)
        logger.info(
            "Decision for {} (session={}): {} accepted={}",
            tool_use_id,
            session_id,
            decision.behavior,
            accepted,
        )
        return accepted

    def _coordinator(self, session: RuntimeSession) -> RunCoordinator:
        return RunCoordinator(
            session,
            engine=self._engine,
            broker=self._broker,
            registry=self._registry,
            emit=self.emit,
            settings=self._settings,
        )

    # -- Queries ---------------------------------------------------------------

    def list_sessions(self) -> ProtocolEvent:
        """Publish and return a ``session.list`` snapshot."""
        infos = [session.to_info() for session in self._registry.all_sessions()]
        event = session_list_event([info.model_dump(mode="json") for info in infos])
        self._bus.publish(event)
        return event

    def fetch_history(self, session_id: str) -> ProtocolEvent:
        """Publish and return a ``session.history`` snapshot."""
        session = self._require(session_id)
        event = session_history_event(session_id, session.status, list(session.messages))
        self._bus.publish(event)
        return event

    def recent_cwds(self, limit: int = 8) -> list[str]:
        return self._registry.recent_cwds(limit)

    # -- Delete ----------------------------------------------------------------

    def delete_session(self, session_id: str) -> None:
        """Cancel any active run and forget the session."""
        self._require(session_id)
        handle = self._registry.get_run(session_id)
        # Remove first: the cancelled run must not report a status afterwards.
        self._registry.remove(session_id)
        if handle is not None:
            handle.cancel()
        logger.info("Session deleted: {}", session_id)
        self._bus.publish(deleted_event(session_id))


def _record(session: RuntimeSession, event: ProtocolEvent) -> None:
    match event.event_type:
        case EventType.STREAM_MESSAGE:
            message = event.payload.get("message", {})
            # Partial deltas are transient.
            if message.get("type") != "stream_event":
                session.messages.append(message)
        case EventType.STREAM_USER_PROMPT:
            session.messages.append({"type": "user_prompt", "prompt": event.payload.get("prompt", "")})
