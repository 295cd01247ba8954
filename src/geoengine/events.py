"""EventBus: pub/sub output stream of the engine.

The engine never delivers notifications itself. Registry changes, drawn
shapes, interaction transitions and user-facing notices are published here
and consumed by whatever UI sits on top (toasts, attribute panel, renderer).
"""

from __future__ import annotations

import queue
import threading
from dataclasses import asdict, dataclass
from typing import Callable

# Event types
NOTICE = "notice"
LAYER_ADDED = "layer.added"
LAYER_REMOVED = "layer.removed"
LAYER_STATE_CHANGED = "layer.state_changed"
DRAW_COMPLETED = "draw.completed"
INTERACTION_CHANGED = "interaction.changed"
INTERACTION_NOT_READY = "interaction.not_ready"
QUERY_RESULT = "query.result"


@dataclass(frozen=True)
class Notice:
    """A user-facing message; ``kind`` is machine-readable, ``message`` is not."""

    kind: str
    message: str
    level: str = "info"


class EventBus:
    """Simple thread-safe pub/sub for pushing events to subscribers."""

    def __init__(self, maxsize: int = 100) -> None:
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._subscribers: list[queue.Queue] = []
        self._listeners: dict[str, list[Callable[[dict], None]]] = {}

    def subscribe(self) -> queue.Queue:
        """Subscribe to events. Returns a Queue that receives all events."""
        q: queue.Queue = queue.Queue(maxsize=self._maxsize)
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            try:
                self._subscribers.remove(q)
            except ValueError:
                pass

    def add_listener(self, event_type: str, handler: Callable[[dict], None]) -> None:
        """Call ``handler(data)`` synchronously whenever ``event_type`` is published."""
        with self._lock:
            self._listeners.setdefault(event_type, []).append(handler)

    def remove_listener(self, event_type: str, handler: Callable[[dict], None]) -> None:
        with self._lock:
            handlers = self._listeners.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event_type: str, data: dict | None = None) -> None:
        msg = {"type": event_type}
        if data is not None:
            msg["data"] = data
        with self._lock:
            handlers = list(self._listeners.get(event_type, []))
            for q in self._subscribers:
                try:
                    q.put_nowait(msg)
                except queue.Full:
                    # Drop oldest message to make room
                    try:
                        q.get_nowait()
                    except queue.Empty:
                        pass
                    try:
                        q.put_nowait(msg)
                    except queue.Full:
                        pass
        # Outside the lock so handlers may publish in turn
        for handler in handlers:
            handler(data or {})

    def notify(self, kind: str, message: str, level: str = "info") -> Notice:
        """Publish a user-facing notice and return it."""
        notice = Notice(kind=kind, message=message, level=level)
        self.publish(NOTICE, asdict(notice))
        return notice


def drain(q: queue.Queue) -> list[dict]:
    """Pop every pending message from a subscriber queue."""
    messages = []
    while True:
        try:
            messages.append(q.get_nowait())
        except queue.Empty:
            return messages
