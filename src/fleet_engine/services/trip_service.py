"""Trip lifecycle: stops, metrics and guarded status transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleet_engine.errors import InvalidTransition, parse_choice
from fleet_engine.models import Trip, TripMetrics, TripStop, Vehicle
from fleet_engine.runtime import Clock, IdFactory, SystemClock, default_id_factory
from fleet_engine.services.state_machine import TripStateMachine, TripStatus, status_value
from fleet_engine.store import EntityStore

logger = logging.getLogger(__name__)


class StopType(str, Enum):
    PICKUP = "pickup"
    DROP = "drop"
    FUEL = "fuel"
    REST = "rest"
    INSPECTION = "inspection"
    BREAKDOWN = "breakdown"


@dataclass(frozen=True)
class TripProgress:
    completed_stops: int
    total_stops: int

    @property
    def percent(self) -> float:
        if self.total_stops == 0:
            return 0.0
        return round(100.0 * self.completed_stops / self.total_stops, 1)


@dataclass(frozen=True)
class TransitionResult:
    trip: Trip
    from_status: str
    to_status: str


class TripService:
    """Creates trips and moves them through their lifecycle.

    Each status write is a compare-and-set against the status the guards
    were evaluated on, so two writers racing on one trip cannot both win.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        new_id: IdFactory = default_id_factory,
    ):
        self.session = session
        self.store = EntityStore(session)
        self.clock = clock or SystemClock()
        self.new_id = new_id

    def create_trip(
        self,
        vehicle_id: UUID,
        driver_user_id: UUID,
        planned_start_at: datetime,
        origin_city: str | None = None,
        origin_state: str | None = None,
        dest_city: str | None = None,
        dest_state: str | None = None,
        distance_miles: float | None = None,
        external_ref: str | None = None,
    ) -> Trip:
        self.store.require(Vehicle, vehicle_id)
        now = self.clock.now()
        trip = self.store.add(
            Trip(
                id=self.new_id(),
                vehicle_id=vehicle_id,
                driver_user_id=driver_user_id,
                planned_start_at=planned_start_at,
                origin_city=origin_city,
                origin_state=origin_state,
                dest_city=dest_city,
                dest_state=dest_state,
                distance_miles=distance_miles,
                external_ref=external_ref,
                status=TripStatus.PLANNED.value,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Created trip %s for vehicle %s", trip.id, vehicle_id)
        return trip

    # ------------------------------------------------------------------
    # Stops
    # ------------------------------------------------------------------

    def stops(self, trip_id: UUID) -> list[TripStop]:
        return self.store.find(TripStop, TripStop.trip_id == trip_id, order_by=TripStop.stop_sequence)

    def add_stop(
        self,
        trip_id: UUID,
        stop_type: str,
        city: str | None = None,
        state: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        timestamp: datetime | None = None,
        notes: str | None = None,
    ) -> TripStop:
        """Append a stop after the current last one."""
        self.store.require(Trip, trip_id)
        last = self.session.scalar(
            select(func.max(TripStop.stop_sequence)).where(TripStop.trip_id == trip_id)
        )
        return self.store.add(
            TripStop(
                id=self.new_id(),
                trip_id=trip_id,
                stop_sequence=(last or 0) + 1,
                stop_type=parse_choice(StopType, stop_type, "stop_type").value,
                city=city,
                state=state,
                latitude=latitude,
                longitude=longitude,
                timestamp=timestamp,
                notes=notes,
                created_at=self.clock.now(),
            )
        )

    def complete_stop(self, stop_id: UUID, at: datetime | None = None) -> TripStop:
        """Mark a stop as reached. The first timestamp wins."""
        stop = self.store.require(TripStop, stop_id)
        if stop.timestamp is None:
            stop.timestamp = at or self.clock.now()
            self.session.flush()
        return stop

    def progress(self, trip_id: UUID) -> TripProgress:
        stops = self.stops(trip_id)
        return TripProgress(
            completed_stops=sum(1 for s in stops if s.is_completed),
            total_stops=len(stops),
        )

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def metrics(self, trip_id: UUID) -> TripMetrics | None:
        return self.store.find_one(TripMetrics, TripMetrics.trip_id == trip_id)

    def record_metrics(
        self,
        trip_id: UUID,
        total_miles: float,
        fuel_volume_gal: float = 0.0,
        fuel_cost: Decimal = Decimal("0"),
        drive_time_minutes: int = 0,
        idle_time_minutes: int = 0,
        mpg: float | None = None,
    ) -> TripMetrics:
        """Create or replace the trip's fuel and mileage reconciliation."""
        self.store.require(Trip, trip_id)
        if total_miles < 0 or fuel_volume_gal < 0:
            raise ValueError("miles and gallons must be non-negative")
        if mpg is None and fuel_volume_gal > 0:
            mpg = round(total_miles / fuel_volume_gal, 2)

        metrics = self.metrics(trip_id)
        if metrics is None:
            metrics = TripMetrics(id=self.new_id(), trip_id=trip_id, created_at=self.clock.now())
            self.session.add(metrics)
        metrics.total_miles = total_miles
        metrics.fuel_volume_gal = fuel_volume_gal
        metrics.fuel_cost = Decimal(fuel_cost)
        metrics.drive_time_minutes = drive_time_minutes
        metrics.idle_time_minutes = idle_time_minutes
        metrics.mpg = mpg
        self.session.flush()
        return metrics

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(self, trip_id: UUID, to_status: str) -> TransitionResult:
        """Move a trip to ``to_status``.

        Raises:
            InvalidTransition: the edge is not allowed, a guard fails, or
                another writer changed the status first
        """
        trip = self.store.require(Trip, trip_id)
        from_status = trip.status
        target = status_value(to_status)

        errors = TripStateMachine.validate_trip_for_transition(
            trip, target, self.stops(trip_id), self.metrics(trip_id)
        )
        if errors:
            logger.warning("Rejected trip %s %s -> %s: %s", trip_id, from_status, target, errors)
            raise InvalidTransition("trip", from_status, target, "; ".join(errors))

        now = self.clock.now()
        values: dict[str, object] = {"status": target, "updated_at": now}
        if target == TripStatus.IN_TRANSIT and trip.actual_start_at is None:
            values["actual_start_at"] = now
        if target in TripStateMachine.ENDING and trip.end_at is None:
            values["end_at"] = now

        if not self.store.compare_and_set(Trip, trip_id, from_status, values):
            raise InvalidTransition(
                "trip", trip.status, target, f"status changed concurrently from '{from_status}'"
            )

        logger.info("Trip %s %s -> %s", trip_id, from_status, target)
        return TransitionResult(trip=trip, from_status=from_status, to_status=target)
