"""Agent engine collaborator.

The engine interprets a prompt, decides on tool invocations and emits a
message stream.  The coordinator only relies on the ``AgentEngine``
protocol:

- ``stream(request, gate)`` yields JSON-serialisable message dicts, each with
  a ``type`` key (``system``, ``assistant``, ``user``, ``result``,
  ``stream_event``);
- the first message is ``system``/``init`` carrying the engine ``session_id``
  used to resume later;
- exactly one ``result`` message per run carries a ``subtype`` (``success``
  or an error subtype);
- before every tool use the engine awaits ``gate(tool_name, tool_input,
  tool_use_id)`` and honours the returned decision.

``ClaudeEngine`` implements the protocol on top of ``claude-agent-sdk``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    PermissionResultAllow,
    PermissionResultDeny,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolPermissionContext,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
)
from claude_agent_sdk.types import StreamEvent

from agentgate.agent_runtime.models.permission import Allow, PermissionDecision

if TYPE_CHECKING:
    from agentgate.agent_runtime.execution.cancellation import CancellationToken

logger = logging.getLogger(__name__)

ToolGate = Callable[[str, Any, str | None], Awaitable[PermissionDecision]]


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


@dataclass
class EngineRequest:
    """Everything the engine needs to start or resume one run."""

    prompt: str
    cwd: str
    cancellation: CancellationToken
    additional_directories: Sequence[str] = field(default_factory=list)
    model: str | None = None
    resume: str | None = None
    """Engine session token from a previous run; ``None`` starts fresh context."""


@runtime_checkable
class AgentEngine(Protocol):
    def stream(self, request: EngineRequest, gate: ToolGate) -> AsyncIterator[dict[str, Any]]:
        """Run the agent and yield its messages as dicts."""
        ...


# ---------------------------------------------------------------------------
# Message conversion
# ---------------------------------------------------------------------------

_BLOCK_TYPES: dict[type, str] = {
    TextBlock: "text",
    ThinkingBlock: "thinking",
    ToolUseBlock: "tool_use",
    ToolResultBlock: "tool_result",
}


def _block_to_dict(block: Any) -> dict[str, Any]:
    data = dataclasses.asdict(block) if dataclasses.is_dataclass(block) else {"value": block}
    data["type"] = _BLOCK_TYPES.get(type(block), type(block).__name__)
    return data


def _content_to_wire(content: Any) -> Any:
    if isinstance(content, str):
        return content
    return [_block_to_dict(block) for block in content]


def message_to_dict(message: Any) -> dict[str, Any]:
    """Convert an SDK message dataclass into the wire shape observers consume."""
    match message:
        case SystemMessage():
            return {**message.data, "type": "system", "subtype": message.subtype}
        case AssistantMessage():
            return {
                "type": "assistant",
                "message": {
                    "role": "assistant",
                    "model": message.model,
                    "content": _content_to_wire(message.content),
                },
                "parent_tool_use_id": message.parent_tool_use_id,
            }
        case UserMessage():
            return {
                "type": "user",
                "message": {"role": "user", "content": _content_to_wire(message.content)},
                "parent_tool_use_id": message.parent_tool_use_id,
            }
        case ResultMessage():
            return {**dataclasses.asdict(message), "type": "result"}
        case StreamEvent():
            return {
                "type": "stream_event",
                "uuid": message.uuid,
                "session_id": message.session_id,
                "event": message.event,
                "parent_tool_use_id": message.parent_tool_use_id,
            }
    if dataclasses.is_dataclass(message):
        return {"type": type(message).__name__, **dataclasses.asdict(message)}
    return {"type": "unknown", "value": repr(message)}


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


def build_engine_env() -> dict[str, str]:
    """Widen ``PATH`` with common install locations of the engine's CLI.

    GUI launchers and service managers often start with a minimal ``PATH``
    that misses user-level node / bun installs.
    """
    home = Path.home()
    extra = [
        "/usr/local/bin",
        "/opt/homebrew/bin",
        str(home / ".bun" / "bin"),
        str(home / ".volta" / "bin"),
        str(home / ".fnm" / "aliases" / "default" / "bin"),
        "/usr/bin",
        "/bin",
    ]
    current = os.environ.get("PATH", "")
    return {"PATH": os.pathsep.join([*extra, current]) if current else os.pathsep.join(extra)}


# ---------------------------------------------------------------------------
# Claude adapter
# ---------------------------------------------------------------------------


class ClaudeEngine:
    """``AgentEngine`` backed by ``claude_agent_sdk.ClaudeSDKClient``."""

    def __init__(
        self,
        *,
        include_partial_messages: bool = True,
        setting_sources: Sequence[str] = ("user", "project"),
        env: dict[str, str] | None = None,
    ) -> None:
        self._include_partial_messages = include_partial_messages
        self._setting_sources = list(setting_sources)
        self._env = env if env is not None else build_engine_env()
        self._interrupts: set[asyncio.Task[None]] = set()

    def build_options(self, request: EngineRequest, gate: ToolGate) -> ClaudeAgentOptions:
        async def can_use_tool(
            tool_name: str,
            input_data: dict[str, Any],
            context: ToolPermissionContext,
        ) -> PermissionResultAllow | PermissionResultDeny:
            decision = await gate(tool_name, input_data, getattr(context, "tool_use_id", None))
            if isinstance(decision, Allow):
                return PermissionResultAllow(updated_input=decision.updated_input)
            return PermissionResultDeny(message=decision.reason)

        # No permission_mode: every tool use goes through can_use_tool.
        return ClaudeAgentOptions(
            cwd=request.cwd,
            add_dirs=list(request.additional_directories),
            resume=request.resume,
            model=request.model,
            include_partial_messages=self._include_partial_messages,
            setting_sources=self._setting_sources,
            can_use_tool=can_use_tool,
            env=self._env,
        )

    async def stream(self, request: EngineRequest, gate: ToolGate) -> AsyncIterator[dict[str, Any]]:
        options = self.build_options(request, gate)
        logger.info(
            "Starting engine: cwd=%s, model=%s, resume=%s, extra_dirs=%d",
            request.cwd,
            request.model,
            request.resume,
            len(options.add_dirs),
        )
        async with ClaudeSDKClient(options=options) as client:
            remove_callback = request.cancellation.add_callback(lambda: self._schedule_interrupt(client))
            try:
                await client.query(request.prompt)
                async for message in client.receive_response():
                    yield message_to_dict(message)
            finally:
                remove_callback()

    def _schedule_interrupt(self, client: ClaudeSDKClient) -> None:
        task = asyncio.get_running_loop().create_task(_interrupt_quietly(client))
        self._interrupts.add(task)
        task.add_done_callback(self._interrupts.discard)


async def _interrupt_quietly(client: ClaudeSDKClient) -> None:
    try:
        await client.interrupt()
    except Exception:
        logger.debug("Engine interrupt failed", exc_info=True)
