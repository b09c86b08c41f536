"""
Session notification channel.

Every notification is a SessionEvent tagged with an EventType. Consumers
either subscribe a callback or iterate ``stream()`` from a coroutine.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    READY = "ready"
    CHANGE = "change"
    ERROR = "error"
    PRESET_ADD = "preset-add"
    PRESET_REMOVE = "preset-remove"
    LAYOUT_CHANGE = "layout-change"
    THEME_CHANGE = "theme-change"


@dataclass(frozen=True)
class SessionEvent:
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'payload': self.payload,
            'timestamp': self.timestamp,
        }


Subscriber = Callable[[SessionEvent], None]

# Marks the end of a stream
_CLOSED = object()


class EventChannel:
    """Fan-out of session events to callbacks and async streams."""

    def __init__(self, max_queue: int = 256):
        self._subscribers: List[Subscriber] = []
        self._queues: List[asyncio.Queue] = []
        self._max_queue = max_queue
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for every event.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event_type: EventType, payload: Optional[Dict[str, Any]] = None) -> SessionEvent:
        """Deliver an event to every subscriber and stream."""
        event = SessionEvent(event_type, payload or {})
        if self._closed:
            return event

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                # Subscriber errors are logged, never propagated
                logger.error(f"Event subscriber failed on '{event_type.value}'", exc_info=True)

        for queue in list(self._queues):
            if queue.full():
                # Slow stream consumer: drop its oldest event
                queue.get_nowait()
                logger.debug("Event stream queue full, dropped oldest event")
            queue.put_nowait(event)

        return event

    async def stream(self) -> AsyncIterator[SessionEvent]:
        """Yield events as they are emitted until the channel is closed."""
        if self._closed:
            return
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)
        self._queues.append(queue)
        try:
            while True:
                event = await queue.get()
                if event is _CLOSED:
                    break
                yield event
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def close(self) -> None:
        """End all streams and drop all subscribers."""
        if self._closed:
            return
        self._closed = True
        self._subscribers.clear()
        for queue in list(self._queues):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(_CLOSED)
