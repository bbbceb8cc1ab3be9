"""Lightweight synchronous event emitter for feedback-loop lifecycle events.

Event names:
    degraded:change   (degraded: bool)
    offline:synced    ({"count": int})
    offline:stored    ({"content": str})
    memory:recalled   (facts: list)
    feedback:queued   ({"count": int})
    error             (error: Exception)
"""

from collections import defaultdict
from typing import Any, Callable

import structlog

logger = structlog.get_logger()

Listener = Callable[..., Any]


class EventEmitter:
    """Register listeners by event name and call them in registration order."""

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> "EventEmitter":
        self._listeners[event].append(listener)
        return self

    def once(self, event: str, listener: Listener) -> "EventEmitter":
        def wrapper(*args):
            self.off(event, wrapper)
            return listener(*args)

        return self.on(event, wrapper)

    def off(self, event: str, listener: Listener) -> "EventEmitter":
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)
        return self

    def emit(self, event: str, *args) -> bool:
        """Call every listener for ``event``. Returns False if nobody listened.

        A failing listener is logged and does not stop the others.
        """
        listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                listener(*args)
            except Exception as e:
                logger.warning("listener_failed", event_name=event, error=str(e))
        return bool(listeners)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)
