"""Temporal validity: expiry, expiring-soon windows and day counts.

Every "is X overdue / expiring" question in the engine routes through
``ValidityEngine`` so that window lengths change in one place.

Rules shared by all entity kinds:

- no expiry or due date means never expired and never expiring soon
- a ``date`` expires when it is strictly before the as-of day; a
  ``datetime`` expires when it is strictly before the as-of instant
- ``days_until`` counts whole days between start-of-day values and is
  clamped at zero
- an expired entity is also expiring soon; callers rank ``is_expired`` first
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from fleet_engine.runtime import as_utc


class EntityKind(str, Enum):
    """Entity kinds that carry an expiry or due date."""

    DOCUMENT = "document"
    VEHICLE_DOCUMENT = "vehicle_document"
    LEASE_CONTRACT = "lease_contract"
    COMPLIANCE_EVENT = "compliance_event"
    ASSIGNMENT = "assignment"
    PAYMENT_SCHEDULE = "payment_schedule"


# Statuses after which an entity no longer has a live deadline
CLOSED_STATUSES: dict[EntityKind, frozenset[str]] = {
    EntityKind.COMPLIANCE_EVENT: frozenset({"completed", "cancelled"}),
    EntityKind.ASSIGNMENT: frozenset({"completed", "cancelled"}),
    EntityKind.LEASE_CONTRACT: frozenset({"terminated"}),
    EntityKind.PAYMENT_SCHEDULE: frozenset({"inactive", "completed"}),
}


@dataclass(frozen=True)
class ValidityPolicy:
    """Expiring-soon windows, in days, per entity kind."""

    default_window_days: int = 30
    compliance_window_days: int = 7
    assignment_window_days: int = 7

    def __post_init__(self) -> None:
        for name in ("default_window_days", "compliance_window_days", "assignment_window_days"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    def window_for(self, kind: EntityKind | str) -> int:
        kind = EntityKind(kind)
        if kind == EntityKind.COMPLIANCE_EVENT:
            return self.compliance_window_days
        if kind == EntityKind.ASSIGNMENT:
            return self.assignment_window_days
        return self.default_window_days


@dataclass(frozen=True)
class ValidityReport:
    """Result of a validity check for one entity."""

    is_expired: bool
    is_expiring_soon: bool
    days_until: int
    expires_on: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_expired": self.is_expired,
            "is_expiring_soon": self.is_expiring_soon,
            "days_until": self.days_until,
            "expires_on": self.expires_on.isoformat() if self.expires_on else None,
        }


def _day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return as_utc(value).date()
    return value


def is_expired(expiry: date | datetime | None, as_of: datetime) -> bool:
    if expiry is None:
        return False
    if isinstance(expiry, datetime):
        return as_utc(expiry) < as_utc(as_of)
    return expiry < _day(as_of)


def days_until(target: date | datetime | None, as_of: datetime) -> int:
    """Whole days from the as-of day to ``target``'s day, never negative."""
    if target is None:
        return 0
    return max((_day(target) - _day(as_of)).days, 0)


def is_expiring_soon(expiry: date | datetime | None, window_days: int, as_of: datetime) -> bool:
    """True when due within ``window_days``, including when already past due."""
    if expiry is None:
        return False
    return days_until(expiry, as_of) <= window_days


def _occurrence(year: int, month: int, due_day: int) -> date:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last))


def next_due_date(schedule: Any, as_of: datetime) -> date | None:
    """Next monthly occurrence of ``schedule.due_day`` strictly after the as-of day.

    A day past the end of a short month falls on that month's last day.
    Occurrences before ``start_date`` are skipped; past ``end_date`` there
    is no next due date.
    """
    after = _day(as_of)
    start = getattr(schedule, "start_date", None)
    if start is not None and start > after:
        after = start - timedelta(days=1)

    candidate = _occurrence(after.year, after.month, schedule.due_day)
    if candidate <= after:
        year, month = (after.year + 1, 1) if after.month == 12 else (after.year, after.month + 1)
        candidate = _occurrence(year, month, schedule.due_day)

    end = getattr(schedule, "end_date", None)
    if end is not None and candidate > end:
        return None
    return candidate


class ValidityEngine:
    """Applies a ``ValidityPolicy`` to stored entities."""

    def __init__(self, policy: ValidityPolicy | None = None):
        self.policy = policy or ValidityPolicy()

    def is_expired(self, expiry: date | datetime | None, as_of: datetime) -> bool:
        return is_expired(expiry, as_of)

    def is_expiring_soon(
        self,
        expiry: date | datetime | None,
        as_of: datetime,
        window_days: int | None = None,
    ) -> bool:
        window = self.policy.default_window_days if window_days is None else window_days
        return is_expiring_soon(expiry, window, as_of)

    def days_until(self, target: date | datetime | None, as_of: datetime) -> int:
        return days_until(target, as_of)

    def next_due_date(self, schedule: Any, as_of: datetime) -> date | None:
        return next_due_date(schedule, as_of)

    def deadline_of(self, entity: Any, kind: EntityKind | str, as_of: datetime) -> date | None:
        """The date that governs validity for ``entity``, or None if it has none."""
        kind = EntityKind(kind)
        closed = CLOSED_STATUSES.get(kind, frozenset())
        if getattr(entity, "status", None) in closed:
            return None

        if kind in (EntityKind.DOCUMENT, EntityKind.VEHICLE_DOCUMENT):
            return entity.expiry_date
        if kind in (EntityKind.LEASE_CONTRACT, EntityKind.ASSIGNMENT):
            return entity.end_date
        if kind == EntityKind.COMPLIANCE_EVENT:
            return entity.due_date
        return self.next_due_date(entity, as_of)

    def check(self, entity: Any, kind: EntityKind | str, as_of: datetime) -> ValidityReport:
        kind = EntityKind(kind)
        deadline = self.deadline_of(entity, kind, as_of)
        return ValidityReport(
            is_expired=is_expired(deadline, as_of),
            is_expiring_soon=is_expiring_soon(deadline, self.policy.window_for(kind), as_of),
            days_until=days_until(deadline, as_of),
            expires_on=_day(deadline) if deadline is not None else None,
        )

    def is_overdue(self, event: Any, as_of: datetime) -> bool:
        """Derived overdue flag for a compliance event: pending and past due."""
        return event.status == "pending" and is_expired(event.due_date, as_of)

    def vehicle_document_status(self, expiry: date | None, as_of: datetime) -> str:
        """Derived VehicleDocument status from its expiry date."""
        if is_expired(expiry, as_of):
            return "expired"
        if is_expiring_soon(expiry, self.policy.default_window_days, as_of):
            return "expiring_soon"
        return "valid"
