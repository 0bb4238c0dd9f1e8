"""Injected runtime collaborators: clock and identifier generation.

Nothing in the core calls ``datetime.now()`` or ``uuid4()`` directly.
Services receive a ``Clock`` and an ``IdFactory`` so tests can pin time
and identifiers.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol, runtime_checkable
from uuid import UUID, uuid4

IdFactory = Callable[[], UUID]

default_id_factory: IdFactory = uuid4


@runtime_checkable
class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, at: datetime | None = None) -> None:
        self._now = as_utc(at) if at is not None else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, at: datetime) -> None:
        self._now = as_utc(at)

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
