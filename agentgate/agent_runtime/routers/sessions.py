"""Session endpoints (RPC-style).

Thin HTTP adapter -- delegates to session manager.  All write operations use
POST; reads use GET.  ``/events`` streams every outbound protocol event as
Server-Sent Events.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException, Query, status
from sse_starlette.sse import EventSourceResponse

from agentgate.agent_runtime.bus import EventBus
from agentgate.agent_runtime.deps import Bus, SessionMgr
from agentgate.agent_runtime.managers.sessions import (
    NotResumableError,
    SessionBusyError,
    SessionNotFoundError,
)
from agentgate.agent_runtime.models.api import (
    CancelResponse,
    ContinueRunRequest,
    DecisionRequest,
    DecisionResponse,
    RecentCwdsResponse,
    RunStartedResponse,
    StartRunRequest,
)
from agentgate.agent_runtime.models.events import ProtocolEvent
from agentgate.agent_runtime.registry import ShuttingDownError

router = APIRouter(prefix="/sessions", tags=["sessions"])
events_router = APIRouter(tags=["events"])

SSE_PING_SECONDS = 15


def _not_found(session_id: str) -> HTTPException:
    return HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.")


def _shutting_down() -> HTTPException:
    return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is shutting down.")


# -- Runs ----------------------------------------------------------------------


@router.post("/start", response_model=RunStartedResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_run(body: StartRunRequest, manager: SessionMgr) -> RunStartedResponse:
    """Create a session and start its first run."""
    try:
        session = manager.start_run(
            prompt=body.prompt,
            cwd=body.cwd,
            additional_directories=body.additional_directories,
            title=body.title,
            model=body.model,
        )
    except ShuttingDownError:
        raise _shutting_down() from None
    return RunStartedResponse(session_id=session.session_id)


@router.post("/{session_id}/continue", response_model=RunStartedResponse, status_code=status.HTTP_202_ACCEPTED)
async def continue_run(session_id: str, body: ContinueRunRequest, manager: SessionMgr) -> RunStartedResponse:
    """Start a follow-up run resuming the session's engine context."""
    try:
        manager.continue_run(session_id, body.prompt)
    except SessionNotFoundError:
        raise _not_found(session_id) from None
    except (SessionBusyError, NotResumableError) as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from None
    except ShuttingDownError:
        raise _shutting_down() from None
    return RunStartedResponse(session_id=session_id)


@router.post("/{session_id}/cancel", response_model=CancelResponse)
async def cancel_run(session_id: str, manager: SessionMgr) -> CancelResponse:
    try:
        cancelled = manager.cancel_run(session_id)
    except SessionNotFoundError:
        raise _not_found(session_id) from None
    return CancelResponse(cancelled=cancelled)


@router.post("/{session_id}/decision", response_model=DecisionResponse)
async def submit_decision(session_id: str, body: DecisionRequest, manager: SessionMgr) -> DecisionResponse:
    """Resolve an outstanding permission request.  Unknown ids are not an error."""
    accepted = manager.submit_decision(session_id, body.tool_use_id, body.decision)
    return DecisionResponse(accepted=accepted)


# -- Queries -------------------------------------------------------------------


@router.get("/list", response_model=ProtocolEvent)
async def list_sessions(manager: SessionMgr) -> ProtocolEvent:
    """Snapshot of all sessions as a ``session.list`` event."""
    return manager.list_sessions()


@router.get("/recent-cwds", response_model=RecentCwdsResponse)
async def recent_cwds(
    manager: SessionMgr,
    limit: int = Query(8, description="Maximum number of directories (clamped to 1..20)."),
) -> RecentCwdsResponse:
    return RecentCwdsResponse(cwds=manager.recent_cwds(max(1, min(limit, 20))))


@router.get("/{session_id}/history", response_model=ProtocolEvent)
async def fetch_history(session_id: str, manager: SessionMgr) -> ProtocolEvent:
    """Snapshot of a session's timeline as a ``session.history`` event."""
    try:
        return manager.fetch_history(session_id)
    except SessionNotFoundError:
        raise _not_found(session_id) from None


# -- Delete --------------------------------------------------------------------


@router.post("/{session_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, manager: SessionMgr) -> None:
    """Cancel any active run and forget the session."""
    try:
        manager.delete_session(session_id)
    except SessionNotFoundError:
        raise _not_found(session_id) from None


# -- Event feed ----------------------------------------------------------------


async def sse_payloads(bus: EventBus) -> AsyncIterator[dict[str, str]]:
    """Render bus events as SSE fields (id, event name, JSON envelope)."""
    async for event in bus.stream():
        yield {
            "id": event.event_id,
            "event": event.event_type.value,
            "data": event.model_dump_json(),
        }


@events_router.get("/events")
async def stream_events(bus: Bus) -> EventSourceResponse:
    """Stream outbound protocol events until the service shuts down."""
    return EventSourceResponse(sse_payloads(bus), ping=SSE_PING_SECONDS)
