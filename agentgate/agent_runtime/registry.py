"""In-process session registry.

Holds every known session record and the handles of running executions.
Ephemeral -- empty on process restart.  Created once at process start and
handed to the components that need it; nothing reaches it through module
globals.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING

from loguru import logger

from agentgate.agent_runtime.context import RuntimeSession

if TYPE_CHECKING:
    from agentgate.agent_runtime.execution.coordinator import RunHandle


class ShuttingDownError(RuntimeError):
    """Raised when attempting to start a run during shutdown."""


class SessionRegistry:
    """Registry of sessions and their active runs.

    The registry also provides a drain mechanism for graceful shutdown:
    ``wait_until_drained`` blocks until all runs have finished.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, RuntimeSession] = {}
        self._runs: dict[str, RunHandle] = {}
        # A finished run may still be closing its stream and cleaning up
        # while the next run of the same session starts.
        self._active: set[RunHandle] = set()
        self._drain_event = asyncio.Event()
        self._drain_event.set()  # Starts "drained" (no runs).
        self._shutting_down = False

    # -- Sessions --------------------------------------------------------------

    def create(
        self,
        *,
        title: str,
        cwd: str | None = None,
        additional_directories: list[str] | None = None,
        model: str | None = None,
    ) -> RuntimeSession:
        session = RuntimeSession(
            session_id=uuid.uuid4().hex,
            title=title,
            cwd=cwd,
            additional_directories=list(additional_directories or []),
            model=model,
        )
        self._sessions[session.session_id] = session
        logger.debug("Registry: created session {} (cwd={})", session.session_id, cwd)
        return session

    def remove(self, session_id: str) -> RuntimeSession | None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.deleted = True
            logger.debug("Registry: removed session {}", session_id)
        return session

    def get(self, session_id: str) -> RuntimeSession | None:
        return self._sessions.get(session_id)

    def all_sessions(self) -> list[RuntimeSession]:
        """Return a snapshot of all sessions, most recently updated first."""
        return sorted(self._sessions.values(), key=lambda s: s.updated_at, reverse=True)

    def recent_cwds(self, limit: int = 8) -> list[str]:
        """Return distinct working directories, most recently used first."""
        seen: list[str] = []
        for session in self.all_sessions():
            if session.cwd and session.cwd not in seen:
                seen.append(session.cwd)
            if len(seen) >= limit:
                break
        return seen

    # -- Runs ------------------------------------------------------------------

    def register_run(self, handle: RunHandle) -> None:
        """Register a running execution.  Raises ``ShuttingDownError`` if shutting down."""
        if self._shutting_down:
            raise ShuttingDownError
        logger.debug("Registry: register run for session {}", handle.session_id)
        self._runs[handle.session_id] = handle
        self._active.add(handle)
        self._drain_event.clear()

    def unregister_run(self, handle: RunHandle) -> None:
        """Forget *handle*.  A newer run of the same session stays registered."""
        self._active.discard(handle)
        if self._runs.get(handle.session_id) is handle:
            del self._runs[handle.session_id]
            logger.debug("Registry: unregister run for session {}", handle.session_id)
        if not self._active:
            self._drain_event.set()

    def get_run(self, session_id: str) -> RunHandle | None:
        return self._runs.get(session_id)

    @property
    def active_count(self) -> int:
        return len(self._active)

    # -- Lifecycle -------------------------------------------------------------

    def begin_shutdown(self) -> None:
        """Mark the registry as shutting down.  New runs are refused."""
        self._shutting_down = True
        logger.info("Registry: shutdown initiated, refusing new runs")
        if not self._active:
            self._drain_event.set()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    # -- Control ---------------------------------------------------------------

    def cancel_all(self) -> int:
        """Cancel every active run.  Returns the number of runs signalled."""
        count = 0
        for handle in list(self._active):
            handle.cancel()
            count += 1
            logger.info("Registry: cancelled run for session {}", handle.session_id)
        return count

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Wait until all runs have been unregistered (drained).

        Returns ``True`` if no runs remain, ``False`` if *timeout* expired
        with runs still active.
        """
        if not self._active:
            return True
        try:
            await asyncio.wait_for(self._drain_event.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Registry: drain timed out after {}s with {} runs still active",
                timeout,
                len(self._active),
            )
            return False
        else:
            return True
