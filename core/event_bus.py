"""
In-process event bus

publish() calls every handler inline. Handlers doing I/O must schedule
their own tasks; the bus never awaits them.
"""

import logging
import threading
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe channel."""

    def __init__(self):
        self._handlers: List[Handler] = []
        self._lock = threading.Lock()
        self.published = 0
        self.handler_errors = 0

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a function that removes it."""
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            self.remove(handler)

        return unsubscribe

    def remove(self, handler: Handler) -> None:
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass

    def publish(self, event: Any) -> None:
        """Deliver event to every handler. Handler failures are logged, never raised."""
        with self._lock:
            handlers = list(self._handlers)
        self.published += 1

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.handler_errors += 1
                logger.exception(f"Event handler {getattr(handler, '__name__', handler)!r} failed: {e}")

    @property
    def handler_count(self) -> int:
        return len(self._handlers)
