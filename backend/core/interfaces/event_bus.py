# core/interfaces/event_bus.py
#
# In-process notifications between modules. The PM engine announces each
# generated work item and each completed pass; the work order module
# announces creations. Nothing in the scheduling path waits on a subscriber.

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable


@dataclass
class Event:
    """
    One published fact. event_type is a constant from core/events.py;
    source_module is the MODULE_ID of the publisher. data is a flat dict of
    ids and counters so handlers never receive ORM rows.
    """
    event_type: str
    source_module: str
    data: dict = field(default_factory=dict)


class EventBus(ABC):
    """Publish/subscribe seam for PM and work order notifications."""

    @abstractmethod
    def publish(self, event: Event) -> None:
        """Deliver to subscribers of event.event_type, then to "*" subscribers."""

    @abstractmethod
    def subscribe(self, event_type: str, handler: Callable[[Event], Any]) -> None:
        """Register handler for one event type, or "*" for all of them."""

    @abstractmethod
    def unsubscribe(self, event_type: str, handler: Callable[[Event], Any]) -> None:
        """Remove handler; unknown handlers are ignored."""
