"""Streaming partial-content buffer.

Driven by ``stream_event`` engine messages:

- ``content_block_start`` resets the buffer and marks it active
- ``content_block_delta`` appends the delta's text (``text_delta`` carries
  ``text``, ``thinking_delta`` carries ``thinking``); other deltas add nothing
- ``content_block_stop`` deactivates and discards the buffer
"""

from __future__ import annotations

from typing import Any

from agentgate.timeline.state import PartialMessage


TEXT_DELTA_KEYS = {"text_delta": "text", "thinking_delta": "thinking"}


def delta_text(delta: dict[str, Any]) -> str:
    """Text carried by one content-block delta, or ``""``."""
    key = TEXT_DELTA_KEYS.get(delta.get("type"))
    if key is None:
        return ""
    value = delta.get(key)
    return value if isinstance(value, str) else ""


def apply_stream_event(partial: PartialMessage, message: dict[str, Any]) -> PartialMessage:
    """Advance *partial* by one engine message.  Non-stream messages are ignored."""
    if message.get("type") != "stream_event":
        return partial
    event = message.get("event") or {}
    match event.get("type"):
        case "content_block_start":
            return PartialMessage(text="", active=True)
        case "content_block_delta":
            text = delta_text(event.get("delta") or {})
            if not text:
                return partial
            return partial.model_copy(update={"text": partial.text + text})
        case "content_block_stop":
            return PartialMessage()
    return partial
