"""In-process publication of settlement events.

Handlers (curator notifications, audit feeds, support tooling) subscribe to
event classes or categories. Delivery is synchronous and happens after the
settlement step that produced the event has committed. A handler that raises
is logged and reported back to the publisher; it never reaches the caller of
the settlement operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, TypeVar

from settlement_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=DomainEvent)

EventHandler = Callable[[DomainEvent], None]


@dataclass(frozen=True)
class Subscription:
    """A handler and the events it wants. Empty filters match everything."""

    handler: EventHandler
    event_classes: tuple[type[DomainEvent], ...] = ()
    categories: frozenset[EventCategory] = frozenset()

    def matches(self, event: DomainEvent) -> bool:
        if self.event_classes and not isinstance(event, self.event_classes):
            return False
        if self.categories and event.category not in self.categories:
            return False
        return True


@dataclass(frozen=True)
class HandlerFailure:
    """A handler that raised while receiving an event."""

    handler: EventHandler
    event: DomainEvent
    error: Exception


class EventEmitter:
    """Synchronous settlement event emitter.

    Usage:
        emitter = EventEmitter()
        emitter.on(WithdrawalCompleted, notify_curator)
        emitter.on_category(EventCategory.RECONCILIATION, page_on_call)
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def on(self, event_class: type[E] | list[type[E]], handler: EventHandler) -> None:
        """Subscribe to one event class or several."""
        classes = tuple(event_class) if isinstance(event_class, list) else (event_class,)
        self._subscriptions.append(Subscription(handler, event_classes=classes))

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: EventHandler,
    ) -> None:
        categories = frozenset(category) if isinstance(category, list) else frozenset({category})
        self._subscriptions.append(Subscription(handler, categories=categories))

    def on_all(self, handler: EventHandler) -> None:
        self._subscriptions.append(Subscription(handler))

    def off(self, handler: EventHandler) -> None:
        """Drop every subscription of ``handler``."""
        self._subscriptions = [s for s in self._subscriptions if s.handler is not handler]

    def emit(self, event: DomainEvent) -> list[HandlerFailure]:
        """Deliver ``event`` to every matching handler; returns the handlers that raised."""
        failures: list[HandlerFailure] = []
        for subscription in self._subscriptions:
            if not subscription.matches(event):
                continue
            try:
                subscription.handler(event)
            except Exception as e:
                logger.exception(
                    "Event handler %r failed on %s %s",
                    subscription.handler,
                    event.event_type,
                    event.metadata.event_id,
                )
                failures.append(HandlerFailure(subscription.handler, event, e))
        return failures


class RecordingHandler:
    """Handler that keeps every event it receives, for support tooling and tests."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_class: type[E]) -> list[E]:
        return [e for e in self.events if isinstance(e, event_class)]

    def clear(self) -> None:
        self.events.clear()
