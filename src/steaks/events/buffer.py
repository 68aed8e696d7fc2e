"""Process-local broadcast buffer for chain events.

One ``EventBuffer`` exists per process, created in the app lifespan and
dropped at shutdown; nothing is persisted. Subscribers attached to another
process never see these events.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from typing import Any

import structlog

from steaks.events.schemas import BroadcastEvent, EventType

logger = structlog.get_logger()

SUBSCRIBER_QUEUE_SIZE = 100


class EventBuffer:
    """Bounded ring of recent events plus fan-out queues for live subscribers."""

    def __init__(self, capacity: int = 100) -> None:
        self.capacity = capacity
        self._events: deque[BroadcastEvent] = deque(maxlen=capacity)
        self._subscribers: dict[str, asyncio.Queue[BroadcastEvent]] = {}

    def __len__(self) -> int:
        return len(self._events)

    def publish(self, event_type: EventType, data: dict[str, Any]) -> BroadcastEvent:
        """Append an event (evicting the oldest at capacity) and notify subscribers."""
        event = BroadcastEvent(
            id=str(uuid.uuid4()),
            timestamp=int(time.time() * 1000),
            type=event_type,
            data=data,
        )
        self._events.append(event)
        for client_id, queue in self._subscribers.items():
            if queue.full():
                # Slow consumer: drop its oldest pending event
                dropped = queue.get_nowait()
                logger.warning(
                    "subscriber_queue_overflow",
                    client_id=client_id,
                    dropped_id=dropped.id,
                    dropped_type=dropped.type.value,
                )
            queue.put_nowait(event)
        return event

    def latest(self) -> BroadcastEvent | None:
        return self._events[-1] if self._events else None

    def recent(self) -> list[BroadcastEvent]:
        return list(self._events)

    def subscribe(self) -> tuple[str, asyncio.Queue[BroadcastEvent]]:
        client_id = str(uuid.uuid4())
        queue: asyncio.Queue[BroadcastEvent] = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers[client_id] = queue
        return client_id, queue

    def unsubscribe(self, client_id: str) -> None:
        self._subscribers.pop(client_id, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


_buffer: EventBuffer | None = None


def init_event_buffer(capacity: int = 100) -> EventBuffer:
    """Create the process-wide buffer."""
    global _buffer  # noqa: PLW0603
    _buffer = EventBuffer(capacity)
    return _buffer


def close_event_buffer() -> None:
    global _buffer  # noqa: PLW0603
    _buffer = None


def get_event_buffer() -> EventBuffer:
    """Get the process-wide buffer (FastAPI dependency)."""
    if _buffer is None:
        msg = "Event buffer not initialized. Call init_event_buffer() first."
        raise RuntimeError(msg)
    return _buffer
