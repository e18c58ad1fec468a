"""
Pipeline telemetry events.

Exactly one event is emitted per pipeline run, whatever its outcome. The event
carries the content identity, overall score, pass/fail per dimension and the
run duration. Delivery plumbing (exporters, dashboards) lives outside this
package; subscribers simply receive events on a queue.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from queue import Full, Queue
from typing import Any

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Terminal run states reported through telemetry."""

    RUN_COMPLETED = "run_completed"
    RUN_DEGRADED = "run_degraded"
    RUN_ABORTED = "run_aborted"
    RUN_CANCELLED = "run_cancelled"


@dataclass
class PipelineEvent:
    """A single run summary."""

    event_type: EventType
    data: dict[str, Any]
    timestamp: float = field(default_factory=time.time)

    @property
    def content_id(self) -> str | None:
        return self.data.get("content_id")

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event_type.value,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class EventEmitter:
    """
    Fan-out of run events to subscriber queues.

    Thread-safe: the subscriber list is guarded by a lock and emit delivers
    to a snapshot of it with put_nowait. A full queue (slow consumer) drops
    the event for that subscriber only.

    Usage:
        emitter = EventEmitter()
        queue = emitter.subscribe()
        emitter.emit(EventType.RUN_COMPLETED, {"content_id": "post-1", ...})
        event = queue.get_nowait()
    """

    def __init__(self, maxsize: int = 1000) -> None:
        self._subscribers: list[Queue[PipelineEvent | None]] = []
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._closed = False

    def subscribe(self) -> Queue[PipelineEvent | None]:
        queue: Queue[PipelineEvent | None] = Queue(maxsize=self._maxsize)
        with self._lock:
            self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: Queue[PipelineEvent | None]) -> None:
        with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def emit(self, event_type: EventType, data: dict[str, Any]) -> PipelineEvent | None:
        """Emit an event to all subscribers. Returns the event, or None once closed."""
        if self._closed:
            return None

        event = PipelineEvent(event_type=event_type, data=data)
        with self._lock:
            subscribers = list(self._subscribers)
        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except Full:
                logger.warning("Telemetry subscriber queue full; dropping %s event", event_type.value)
        return event

    def close(self) -> None:
        """Signal end of events to all subscribers."""
        with self._lock:
            self._closed = True
            subscribers = list(self._subscribers)
        for queue in subscribers:
            try:
                queue.put_nowait(None)  # Sentinel
            except Full:
                pass

    @property
    def has_subscribers(self) -> bool:
        with self._lock:
            return len(self._subscribers) > 0
