"""Fan-out of backend notifications to the desktop host."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

from mcpdesk.models.events import HostEvent

logger = logging.getLogger(__name__)


class EventEmitter(Protocol):
    """Anything that accepts named host notifications."""

    def emit(self, name: str, payload: Any) -> HostEvent:
        """Deliver one notification; must not block."""


class HostEventBus:
    """Bounded event history plus live per-subscriber queues.

    Delivery is best effort. A subscriber whose queue is full misses the
    event instead of slowing down the emitter.
    """

    def __init__(self, *, max_events: int = 500, subscriber_queue_size: int = 100) -> None:
        self._events: deque[HostEvent] = deque(maxlen=max(1, max_events))
        self._subscribers: set[asyncio.Queue[HostEvent]] = set()
        self._subscriber_queue_size = subscriber_queue_size

    def emit(self, name: str, payload: Any) -> HostEvent:
        event = HostEvent(name=name, payload=payload)
        self._events.append(event)
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping host event %s for a slow subscriber", name)
        logger.debug("Emitted host event %s (%s)", name, event.id)
        return event

    def list_events(
        self,
        *,
        name: str | None = None,
        limit: int | None = None,
    ) -> list[HostEvent]:
        """List retained events, oldest first, with optional filtering."""
        events = [event for event in self._events if name is None or event.name == name]
        if limit is not None:
            if limit <= 0:
                return []
            events = events[-limit:]
        return events

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[HostEvent]]:
        queue: asyncio.Queue[HostEvent] = asyncio.Queue(maxsize=self._subscriber_queue_size)
        self._subscribers.add(queue)
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)
