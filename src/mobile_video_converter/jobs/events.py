"""Conversion progress events and the event bus.

Every transcode task publishes ConversionProgress events keyed by its
task id. Subscribers either follow one task or every task; a per-task
subscription is seeded with the task's latest event so a late
subscriber sees the current state first and nothing out of order.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class TaskState(Enum):
    """Lifecycle state of a transcode task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELLED)


@dataclass(frozen=True)
class ConversionProgress:
    """Progress event for one task."""

    task_id: str
    progress: float
    status: TaskState
    output_path: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "task_id": self.task_id,
            "progress": self.progress,
            "status": self.status.value,
            "output_path": self.output_path,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


Listener = Callable[[ConversionProgress], None]

# Marks a closed subscription in its queue
_CLOSED = object()


class Subscription:
    """Queue-backed stream of events for one task or for all tasks."""

    def __init__(self, bus: EventBus, task_id: str | None = None) -> None:
        self._bus = bus
        self.task_id = task_id
        self._queue: queue.Queue = queue.Queue()
        self._closed = False

    def accepts(self, event: ConversionProgress) -> bool:
        return self.task_id is None or event.task_id == self.task_id

    def _put(self, item: object) -> None:
        self._queue.put(item)

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, timeout: float | None = None) -> ConversionProgress | None:
        """Return the next event, or None on timeout or after close()."""
        if self._closed and self._queue.empty():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            return None
        return item

    def __iter__(self) -> Iterator[ConversionProgress]:
        """Yield events until closed; per-task streams stop after the terminal event."""
        while True:
            event = self.get()
            if event is None:
                return
            yield event
            if self.task_id is not None and event.is_terminal:
                self.close()
                return

    def close(self) -> None:
        """Stop receiving events and wake any blocked reader."""
        if self._closed:
            return
        self._closed = True
        self._bus._unsubscribe(self)
        self._queue.put(_CLOSED)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class EventBus:
    """Thread-safe publish/subscribe channel for conversion events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self._listeners: list[tuple[str | None, Listener]] = []
        self._latest: dict[str, ConversionProgress] = {}

    def publish(self, event: ConversionProgress) -> None:
        """Deliver an event to matching subscriptions and all listeners.

        Listeners run synchronously on the publishing thread.
        """
        with self._lock:
            self._latest[event.task_id] = event
            for subscription in self._subscriptions:
                if subscription.accepts(event):
                    subscription._put(event)
            listeners = [
                listener
                for task_id, listener in self._listeners
                if task_id is None or task_id == event.task_id
            ]

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for task %s", event.task_id)

    def subscribe(self, task_id: str | None = None) -> Subscription:
        """Open a subscription for one task (or every task when None)."""
        subscription = Subscription(self, task_id)
        with self._lock:
            if task_id is not None and task_id in self._latest:
                subscription._put(self._latest[task_id])
            self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def add_listener(self, listener: Listener, task_id: str | None = None) -> None:
        """Register a callback invoked on the publishing thread.

        A per-task listener is first called with the task's latest event,
        under the bus lock, so it cannot miss or reorder events.
        """
        with self._lock:
            if task_id is not None and task_id in self._latest:
                listener(self._latest[task_id])
            self._listeners.append((task_id, listener))

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners = [
                (task_id, registered)
                for task_id, registered in self._listeners
                if registered != listener
            ]

    def latest(self, task_id: str) -> ConversionProgress | None:
        """Return the most recent event published for a task."""
        with self._lock:
            return self._latest.get(task_id)

    def forget(self, task_id: str) -> None:
        """Drop the remembered latest event of a purged task."""
        with self._lock:
            self._latest.pop(task_id, None)
