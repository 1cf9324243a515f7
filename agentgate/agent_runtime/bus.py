"""In-process event bus.

Fans outbound protocol events out to every attached observer.  Each
subscriber owns an unbounded queue, so a slow consumer never blocks the
producer and every subscriber sees events in exactly the order they were
published.  Observers may attach and detach at any time; a late subscriber
rebuilds earlier state from the list / history snapshots.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger

from agentgate.agent_runtime.models.events import ProtocolEvent

# Queue sentinel: the bus was closed.
_CLOSED = None


class EventBus:
    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue[ProtocolEvent | None]] = set()
        self._closed = False

    def publish(self, event: ProtocolEvent) -> None:
        """Deliver *event* to every subscriber.  Never suspends."""
        for queue in self._subscribers:
            queue.put_nowait(event)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[ProtocolEvent | None]]:
        queue: asyncio.Queue[ProtocolEvent | None] = asyncio.Queue()
        if self._closed:
            queue.put_nowait(_CLOSED)
        self._subscribers.add(queue)
        logger.debug("EventBus: subscriber attached (total={})", len(self._subscribers))
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)
            logger.debug("EventBus: subscriber detached (total={})", len(self._subscribers))

    async def stream(self) -> AsyncIterator[ProtocolEvent]:
        """Yield events published after the call, until the bus is closed."""
        async with self.subscribe() as queue:
            while True:
                event = await queue.get()
                if event is _CLOSED:
                    return
                yield event

    def close(self) -> None:
        """End every ``stream`` iterator once its queued events are drained."""
        self._closed = True
        for queue in self._subscribers:
            queue.put_nowait(_CLOSED)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
