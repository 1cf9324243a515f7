"""Timeline reducer -- folds protocol events into ``TimelineState``.

``apply(state, event)`` is a pure function: it never mutates its inputs,
never reads the clock (``updated_at`` comes from the event timestamp) and
never suspends.  Delivery is assumed exactly-once and ordered, so events are
not deduplicated.

Events for session ids the state has never seen lazily create a default
``SessionView``.

The local actions at the bottom (``select_session``, ``dismiss_error`` ...)
are the user-driven transitions that do not come from the server.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from agentgate.agent_runtime.models.enums import EventType, SessionStatus
from agentgate.agent_runtime.models.events import ProtocolEvent
from agentgate.agent_runtime.models.permission import PermissionRequest
from agentgate.agent_runtime.models.session import SessionInfo
from agentgate.timeline.files import collect_file_paths, extract_file_paths, merge_paths
from agentgate.timeline.partial import apply_stream_event
from agentgate.timeline.state import SessionView, TimelineState

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _view(state: TimelineState, session_id: str) -> SessionView:
    return state.sessions.get(session_id) or SessionView(id=session_id)


def _with_view(state: TimelineState, view: SessionView) -> TimelineState:
    return state.model_copy(update={"sessions": {**state.sessions, view.id: view}})


def _most_recent(views: Iterable[SessionView]) -> str | None:
    latest: SessionView | None = None
    for view in views:
        # Ties go to the later entry.
        if latest is None or view.recency >= latest.recency:
            latest = view
    return latest.id if latest is not None else None


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------


def _on_session_list(state: TimelineState, event: ProtocolEvent) -> TimelineState:
    infos = [SessionInfo.model_validate(item) for item in event.payload.get("sessions", [])]

    sessions: dict[str, SessionView] = {}
    for info in infos:
        sessions[info.id] = _view(state, info.id).model_copy(
            update={
                "title": info.title,
                "status": info.status,
                "cwd": info.cwd,
                "additional_directories": list(info.additional_directories),
                "created_at": info.created_at,
                "updated_at": info.updated_at,
            }
        )

    active = state.active_session_id
    if active is not None and active not in sessions:
        active = None
    elif active is None and sessions:
        active = _most_recent(sessions.values())

    return state.model_copy(update={"sessions": sessions, "active_session_id": active, "sessions_loaded": True})


def _on_session_status(state: TimelineState, event: ProtocolEvent) -> TimelineState:
    session_id = event.session_id
    view = _view(state, session_id)
    title = event.payload.get("title")
    cwd = event.payload.get("cwd")
    view = view.model_copy(
        update={
            "status": SessionStatus(event.payload["status"]),
            "title": title if title is not None else view.title,
            "cwd": cwd if cwd is not None else view.cwd,
            "updated_at": event.timestamp,
        }
    )
    state = _with_view(state, view)
    if state.pending_start:
        state = state.model_copy(update={"active_session_id": session_id, "pending_start": False})
    return state


def _on_session_deleted(state: TimelineState, event: ProtocolEvent) -> TimelineState:
    session_id = event.session_id
    if session_id not in state.sessions:
        return state
    sessions = {sid: view for sid, view in state.sessions.items() if sid != session_id}
    active = state.active_session_id
    if active == session_id:
        active = _most_recent(sessions.values())
    return state.model_copy(update={"sessions": sessions, "active_session_id": active})


def _on_stream_message(state: TimelineState, event: ProtocolEvent) -> TimelineState:
    message: dict[str, Any] = event.payload.get("message", {})
    view = _view(state, event.session_id)
    if message.get("type") == "stream_event":
        # Partial deltas only drive the buffer; history never holds them.
        return _with_view(state, view.model_copy(update={"partial": apply_stream_event(view.partial, message)}))

    update: dict[str, Any] = {"messages": [*view.messages, message]}
    new_files = extract_file_paths(message)
    if new_files:
        update["workspace_files"] = merge_paths(view.workspace_files, new_files)
    return _with_view(state, view.model_copy(update=update))


def _on_user_prompt(state: TimelineState, event: ProtocolEvent) -> TimelineState:
    prompt = event.payload.get("prompt", "")
    view = _view(state, event.session_id)
    view = view.model_copy(
        update={
            "messages": [*view.messages, {"type": "user_prompt", "prompt": prompt}],
            "last_prompt": prompt,
        }
    )
    return _with_view(state, view)


def _on_permission_request(state: TimelineState, event: ProtocolEvent) -> TimelineState:
    request = PermissionRequest(
        tool_use_id=event.payload["tool_use_id"],
        tool_name=event.payload["tool_name"],
        input=event.payload.get("input"),
    )
    view = _view(state, event.session_id)
    return _with_view(state, view.model_copy(update={"permission_requests": [*view.permission_requests, request]}))


def _on_session_history(state: TimelineState, event: ProtocolEvent) -> TimelineState:
    return apply_history(
        state,
        event.session_id,
        SessionStatus(event.payload["status"]),
        event.payload.get("messages", []),
    )


def _on_runner_error(state: TimelineState, event: ProtocolEvent) -> TimelineState:
    return state.model_copy(update={"global_error": event.payload.get("message")})


_HANDLERS = {
    EventType.SESSION_LIST: _on_session_list,
    EventType.SESSION_STATUS: _on_session_status,
    EventType.SESSION_DELETED: _on_session_deleted,
    EventType.STREAM_MESSAGE: _on_stream_message,
    EventType.STREAM_USER_PROMPT: _on_user_prompt,
    EventType.PERMISSION_REQUEST: _on_permission_request,
    EventType.SESSION_HISTORY: _on_session_history,
    EventType.RUNNER_ERROR: _on_runner_error,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def apply(state: TimelineState, event: ProtocolEvent) -> TimelineState:
    """Return the state after *event*.  Unknown event types leave it unchanged."""
    handler = _HANDLERS.get(event.event_type)
    if handler is None:
        return state
    return handler(state, event)


def replay(events: Iterable[ProtocolEvent], state: TimelineState | None = None) -> TimelineState:
    """Fold *events* in order, starting from *state* (or an empty timeline)."""
    state = state if state is not None else TimelineState()
    for event in events:
        state = apply(state, event)
    return state


def apply_history(
    state: TimelineState,
    session_id: str,
    status: SessionStatus,
    messages: list[dict[str, Any]],
) -> TimelineState:
    """Replace a session's messages with a history snapshot and mark it hydrated."""
    view = _view(state, session_id).model_copy(
        update={
            "status": status,
            "messages": list(messages),
            "workspace_files": collect_file_paths(messages),
            "hydrated": True,
        }
    )
    return _with_view(state, view)


# -- Local actions -------------------------------------------------------------


def resolve_permission_request(state: TimelineState, session_id: str, tool_use_id: str) -> TimelineState:
    """Drop a request the user has answered."""
    view = state.sessions.get(session_id)
    if view is None:
        return state
    remaining = [req for req in view.permission_requests if req.tool_use_id != tool_use_id]
    return _with_view(state, view.model_copy(update={"permission_requests": remaining}))


def select_session(state: TimelineState, session_id: str | None) -> TimelineState:
    return state.model_copy(update={"active_session_id": session_id})


def begin_new_session(state: TimelineState) -> TimelineState:
    """Clear the selection; the next status event selects the new session."""
    return state.model_copy(update={"active_session_id": None, "pending_start": True})


def dismiss_error(state: TimelineState) -> TimelineState:
    return state.model_copy(update={"global_error": None})


def mark_history_requested(state: TimelineState, session_id: str) -> TimelineState:
    return state.model_copy(update={"history_requested": state.history_requested | {session_id}})


def needs_history(state: TimelineState, session_id: str) -> bool:
    """True if the session is known, not hydrated and not yet requested."""
    view = state.sessions.get(session_id)
    return view is not None and not view.hydrated and session_id not in state.history_requested
