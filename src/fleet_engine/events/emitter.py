"""In-process publication of domain events.

Subscribers are plain callables. They can listen to event classes
(matched with ``isinstance``, so subscribing to a base class catches its
subclasses), to categories, or to everything. A subscriber that raises is
logged and skipped; the others still run.

Events emitted inside ``batch()`` are held back and delivered when the
outermost batch exits without an exception. If the block raises, the
held events are dropped, since the change they describe never happened.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from fleet_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)

Subscriber = Callable[[DomainEvent], None]


def _as_tuple(value: Any) -> tuple:
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(value)
    return (value,)


@dataclass(frozen=True)
class Subscription:
    subscriber: Subscriber
    event_classes: tuple[type[DomainEvent], ...] = ()
    categories: frozenset[EventCategory] = frozenset()

    def matches(self, event: DomainEvent) -> bool:
        if self.event_classes and not isinstance(event, self.event_classes):
            return False
        if self.categories and event.category not in self.categories:
            return False
        return True


class EventEmitter:
    """Synchronous event emitter.

    Usage:
        emitter = EventEmitter()
        emitter.on(SettlementIssued, notify_accounting)
        emitter.on_category(EventCategory.AUTHORIZATION, audit_log)

        with emitter.batch():
            emitter.emit(drafted)
            emitter.emit(issued)
        # both delivered here
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._depth = 0
        self._held: list[DomainEvent] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def on(
        self, event_class: type[T] | Iterable[type[T]], subscriber: Subscriber
    ) -> None:
        """Subscribe to one or more event classes."""
        self._subscriptions.append(Subscription(subscriber, event_classes=_as_tuple(event_class)))

    def on_category(
        self, category: EventCategory | Iterable[EventCategory], subscriber: Subscriber
    ) -> None:
        self._subscriptions.append(
            Subscription(subscriber, categories=frozenset(_as_tuple(category)))
        )

    def on_all(self, subscriber: Subscriber) -> None:
        self._subscriptions.append(Subscription(subscriber))

    def off(self, subscriber: Subscriber) -> None:
        """Remove every subscription held by ``subscriber``."""
        self._subscriptions = [s for s in self._subscriptions if s.subscriber is not subscriber]

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Deliver ``event`` now, or hold it if a batch is open.

        Returns the exceptions raised by subscribers. Held events report
        their errors when the batch is flushed.
        """
        if self._depth:
            self._held.append(event)
            return []
        return self._deliver(event)

    def _deliver(self, event: DomainEvent) -> list[Exception]:
        errors: list[Exception] = []
        for subscription in [s for s in self._subscriptions if s.matches(event)]:
            try:
                subscription.subscriber(event)
            except Exception as e:
                logger.exception(
                    "Subscriber %r failed on %s %s",
                    subscription.subscriber,
                    event.event_type,
                    event.metadata.event_id,
                )
                errors.append(e)
        return errors

    def batch(self) -> EventBatch:
        """Hold events until the outermost batch exits cleanly."""
        return EventBatch(self)

    def _open(self) -> None:
        self._depth += 1

    def _close(self, flush: bool) -> list[Exception]:
        self._depth -= 1
        if not flush:
            # A failing inner block drops everything held so far
            self._held = []
            return []
        if self._depth:
            return []
        held, self._held = self._held, []
        errors: list[Exception] = []
        for event in held:
            errors.extend(self._deliver(event))
        return errors


class EventBatch:
    """Context manager returned by ``EventEmitter.batch()``."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self.errors: list[Exception] = []

    def __enter__(self) -> EventBatch:
        self._emitter._open()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.errors = self._emitter._close(flush=exc_type is None)

    def add(self, event: DomainEvent) -> None:
        self._emitter.emit(event)


class RecordingHandler:
    """Subscriber that keeps every event it receives, in order."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_class: type[T]) -> list[T]:
        return [e for e in self.events if isinstance(e, event_class)]

    def clear(self) -> None:
        self.events.clear()
