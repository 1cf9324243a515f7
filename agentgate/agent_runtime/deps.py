"""FastAPI dependency injection for the session manager and event bus.

Usage in route handlers::

    @router.post("/{session_id}/cancel")
    async def cancel(session_id: str, manager: SessionMgr) -> CancelResponse:
        ...

Dependencies raise HTTP 503 if the lifespan has not initialised the
component (app constructed without running its lifespan).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from agentgate.agent_runtime.bus import EventBus
from agentgate.agent_runtime.managers.sessions import SessionManager


def get_session_manager(request: Request) -> SessionManager:
    """Return the process-level session manager."""
    manager: SessionManager | None = getattr(request.app.state, "session_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session manager not initialised.",
        )
    return manager


def get_event_bus(request: Request) -> EventBus:
    """Return the shared outbound event bus."""
    bus: EventBus | None = getattr(request.app.state, "event_bus", None)
    if bus is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Event bus not initialised.",
        )
    return bus


# -- Annotated type aliases for concise route signatures ---------------------

SessionMgr = Annotated[SessionManager, Depends(get_session_manager)]
"""Annotated dependency: process-level session manager."""

Bus = Annotated[EventBus, Depends(get_event_bus)]
"""Annotated dependency: outbound event bus."""
