# core/event_bus.py — InMemoryEventBus implementation
#
# Synchronous in-process pub/sub. The PM engine publishes generation and
# run-completed events here; subscribers (notifications, audit) live outside
# the engine and never influence a scheduler pass.

import logging
from collections import defaultdict
from typing import Callable, Any, Iterable

from core.interfaces.event_bus import EventBus, Event

log = logging.getLogger("event_bus")


class InMemoryEventBus(EventBus):
    """
    Synchronous in-process event bus.

    Handlers are called in registration order, typed handlers before wildcard
    ("*") handlers. An exception in one handler is logged and does not stop
    the remaining handlers or reach the publisher.
    """

    def __init__(self):
        self._handlers: dict[str, list[Callable[[Event], Any]]] = defaultdict(list)
        self._wildcard_handlers: list[Callable[[Event], Any]] = []

    def _deliver(self, handlers: Iterable[Callable[[Event], Any]], event: Event) -> None:
        for handler in list(handlers):
            try:
                handler(event)
            except Exception as e:
                log.error(
                    f"Event handler {handler!r} raised for event "
                    f"'{event.event_type}': {e}",
                    exc_info=True,
                )

    def publish(self, event: Event) -> None:
        """Dispatch an event to all registered handlers for its type, then wildcards."""
        self._deliver(self._handlers.get(event.event_type, []), event)
        self._deliver(self._wildcard_handlers, event)

    def subscribe(self, event_type: str, handler: Callable[[Event], Any]) -> None:
        """Register a handler. Use event_type="*" to receive every event."""
        bucket = self._wildcard_handlers if event_type == "*" else self._handlers[event_type]
        if handler not in bucket:
            bucket.append(handler)

    def unsubscribe(self, event_type: str, handler: Callable) -> None:
        """Remove a previously registered handler; unknown handlers are ignored."""
        bucket = self._wildcard_handlers if event_type == "*" else self._handlers.get(event_type, [])
        if handler in bucket:
            bucket.remove(handler)


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_bus: InMemoryEventBus = InMemoryEventBus()


def get_event_bus() -> InMemoryEventBus:
    """Return the application-level event bus singleton."""
    return _bus
