"""Shared fixtures for agent-runtime tests.

``ScriptedEngine`` stands in for the real engine.  It plays a fixed list of
steps on every ``stream`` call:

- a ``dict`` is yielded as an engine message
- ``("tool", name, input, tool_use_id)`` awaits the tool gate and records the
  decision
- ``("wait_cancel",)`` blocks until the run's cancellation fires
- an exception instance is raised

Set ``hold_close`` to an ``asyncio.Event`` to make closing the stream block
until it is set, the way a real client waits on its subprocess.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from agentgate.agent_runtime.app import app
from agentgate.agent_runtime.bus import EventBus
from agentgate.agent_runtime.execution.engine import EngineRequest, ToolGate
from agentgate.agent_runtime.execution.permissions import PermissionBroker
from agentgate.agent_runtime.managers.sessions import SessionManager
from agentgate.agent_runtime.models.events import ProtocolEvent
from agentgate.agent_runtime.models.permission import PermissionDecision
from agentgate.agent_runtime.registry import SessionRegistry
from agentgate.agent_runtime.settings import GateSettings

# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------


class ScriptedEngine:
    def __init__(self, *steps: Any) -> None:
        self.steps = list(steps)
        self.requests: list[EngineRequest] = []
        self.decisions: list[PermissionDecision] = []
        self.closed = 0
        self.hold_close: asyncio.Event | None = None

    async def stream(self, request: EngineRequest, gate: ToolGate) -> AsyncIterator[dict[str, Any]]:
        self.requests.append(request)
        try:
            for step in self.steps:
                if isinstance(step, dict):
                    yield step
                elif isinstance(step, BaseException):
                    raise step
                elif step[0] == "tool":
                    _, tool_name, tool_input, tool_use_id = step
                    self.decisions.append(await gate(tool_name, tool_input, tool_use_id))
                elif step[0] == "wait_cancel":
                    await request.cancellation.wait()
        finally:
            if self.hold_close is not None:
                await self.hold_close.wait()
            self.closed += 1


class RecordingBus(EventBus):
    """Event bus that also keeps every published event."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[ProtocolEvent] = []

    def publish(self, event: ProtocolEvent) -> None:
        self.events.append(event)
        super().publish(event)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_engine() -> Callable[..., ScriptedEngine]:
    return ScriptedEngine


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def events() -> list[ProtocolEvent]:
    return []


@pytest.fixture
def broker(registry: SessionRegistry, events: list[ProtocolEvent]) -> PermissionBroker:
    return PermissionBroker(registry, events.append)


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def make_manager(
    registry: SessionRegistry,
    bus: RecordingBus,
    settings: GateSettings,
) -> Callable[[ScriptedEngine], SessionManager]:
    """Build a manager around *engine*, wired like the app lifespan does."""

    def _make(engine: ScriptedEngine) -> SessionManager:
        return SessionManager(
            registry=registry,
            bus=bus,
            engine=engine,
            broker=PermissionBroker(registry, bus.publish),
            settings=settings,
        )

    return _make


@pytest.fixture
async def make_client(
    make_manager: Callable[[ScriptedEngine], SessionManager],
    bus: RecordingBus,
    tmp_path: Path,
) -> AsyncIterator[Callable[[ScriptedEngine], AsyncClient]]:
    """Async HTTP clients wired to the app with a scripted engine.

    The app lifespan does NOT run under ``ASGITransport``, so state fields
    are pre-set here.
    """
    clients: list[AsyncClient] = []

    def _make(engine: ScriptedEngine) -> AsyncClient:
        app.state.event_bus = bus
        app.state.session_manager = make_manager(engine)
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
    app.state.session_manager = None
    app.state.event_bus = None
