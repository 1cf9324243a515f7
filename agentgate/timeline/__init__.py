"""Consumer-side timeline state.

Observers fold the protocol event feed into a ``TimelineState`` with
``apply``.  The fold is pure and deterministic: the same events in the same
order always produce the same state.
"""

from agentgate.timeline.reducer import (
    apply,
    apply_history,
    begin_new_session,
    dismiss_error,
    mark_history_requested,
    needs_history,
    replay,
    resolve_permission_request,
    select_session,
)
from agentgate.timeline.state import PartialMessage, SessionView, TimelineState

__all__ = [
    "PartialMessage",
    "SessionView",
    "TimelineState",
    "apply",
    "apply_history",
    "begin_new_session",
    "dismiss_error",
    "mark_history_requested",
    "needs_history",
    "replay",
    "resolve_permission_request",
    "select_session",
]
