"""Shared test fixtures: settings isolation and async polling.

Settings are read from ``AGENTGATE_*`` environment variables and cached by
``get_settings()``.  The cache is cleared around every test so env overrides
made with ``monkeypatch`` never leak between tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from pathlib import Path

import pytest

from agentgate.agent_runtime.settings import GateSettings, _get_settings_cached


@pytest.fixture(autouse=True)
def _fresh_settings_cache() -> Iterator[None]:
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> GateSettings:
    """Settings rooted in a temporary default working directory."""
    return GateSettings(_env_file=None, default_cwd=str(tmp_path))


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds, yielding to the event loop in between."""

    async def _wait(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.01)

    return _wait
