"""Tests for the trip lifecycle service."""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import update

from fleet_engine.errors import InvalidTransition, InvalidValue, NotFound
from fleet_engine.models import Trip
from fleet_engine.services.state_machine import TripStateMachine, TripStatus


class TestTripTransitions:
    """Guarded trip transitions through the service."""

    def test_full_walk(self, trip, walk_trip):
        """A trip with stops and metrics reaches completed."""
        trip = walk_trip(trip, "completed")
        assert trip.status == "completed"
        assert trip.actual_start_at is not None
        assert trip.end_at is not None
        assert trip.end_at > trip.actual_start_at

    def test_planned_to_completed_rejected(self, trips, trip):
        """Skipping states is an invalid transition and leaves the trip untouched."""
        with pytest.raises(InvalidTransition) as exc_info:
            trips.transition(trip.id, "completed")
        assert exc_info.value.from_status == "planned"
        assert exc_info.value.to_status == "completed"
        assert trips.store.require(Trip, trip.id).status == "planned"

    def test_loaded_without_pickup_rejected(self, trips, trip):
        trips.add_stop(trip.id, "drop")
        with pytest.raises(InvalidTransition, match="no pickup stop"):
            trips.transition(trip.id, "loaded")

    def test_in_transit_stamps_actual_start_once(self, trips, trip, walk_trip, clock):
        """actual_start_at is set on entering in_transit and never overwritten."""
        trip = walk_trip(trip, "in_transit")
        started = trip.actual_start_at
        assert started == clock.now()

        clock.advance(timedelta(hours=5))
        drop = trips.add_stop(trip.id, "drop")
        trips.complete_stop(drop.id)
        trip = trips.transition(trip.id, "delivered").trip
        assert trip.actual_start_at == started

    def test_delivered_requires_completed_drop(self, trips, trip, walk_trip):
        trip = walk_trip(trip, "in_transit")
        trips.add_stop(trip.id, "drop")
        with pytest.raises(InvalidTransition, match="no completed drop stop"):
            trips.transition(trip.id, "delivered")

    def test_completed_requires_metrics(self, trips, trip, walk_trip):
        trip = walk_trip(trip, "delivered")
        with pytest.raises(InvalidTransition, match="metrics"):
            trips.transition(trip.id, "completed")

    @pytest.mark.parametrize("start", ["planned", "loaded", "in_transit", "delivered"])
    def test_cancel_from_any_open_state(self, trips, trip, walk_trip, start, clock):
        trip = walk_trip(trip, start) if start != "planned" else trip
        result = trips.transition(trip.id, TripStatus.CANCELLED)
        assert result.from_status == start
        assert result.trip.status == "cancelled"
        assert result.trip.end_at == clock.now()

    @pytest.mark.parametrize("terminal", ["completed", "cancelled"])
    def test_terminal_states_reject_everything(self, trips, trip, walk_trip, terminal):
        if terminal == "completed":
            trip = walk_trip(trip, "completed")
        else:
            trips.transition(trip.id, "cancelled")
        for target in ("planned", "loaded", "in_transit", "delivered", "completed", "cancelled"):
            with pytest.raises(InvalidTransition):
                trips.transition(trip.id, target)

    def test_concurrent_writer_loses(self, session, trips, trip):
        """A status change made behind the service's back defeats the compare-and-set."""
        trips.add_stop(trip.id, "pickup")
        session.execute(
            update(Trip)
            .where(Trip.id == trip.id)
            .values(status="cancelled")
            .execution_options(synchronize_session=False)
        )
        # the loaded instance still reads planned, so the guards pass
        assert trip.status == "planned"

        with pytest.raises(InvalidTransition, match="concurrently"):
            trips.transition(trip.id, "loaded")
        assert trip.status == "cancelled"

    def test_missing_trip(self, trips):
        with pytest.raises(NotFound):
            trips.transition(uuid4(), "loaded")


class TestStopsAndMetrics:
    """Stops and metrics feeding the guards."""

    def test_stop_sequence_increments(self, trips, trip):
        stops = [trips.add_stop(trip.id, t) for t in ("pickup", "fuel", "drop")]
        assert [s.stop_sequence for s in stops] == [1, 2, 3]
        assert [s.stop_type for s in trips.stops(trip.id)] == ["pickup", "fuel", "drop"]

    def test_unknown_stop_type(self, trips, trip):
        with pytest.raises(InvalidValue):
            trips.add_stop(trip.id, "teleport")

    def test_complete_stop_first_timestamp_wins(self, trips, trip, clock):
        stop = trips.add_stop(trip.id, "pickup")
        first = trips.complete_stop(stop.id).timestamp
        clock.advance(timedelta(minutes=30))
        assert trips.complete_stop(stop.id).timestamp == first

    def test_progress(self, trips, trip):
        a = trips.add_stop(trip.id, "pickup")
        trips.add_stop(trip.id, "drop")
        trips.complete_stop(a.id)
        progress = trips.progress(trip.id)
        assert (progress.completed_stops, progress.total_stops) == (1, 2)
        assert progress.percent == 50.0

    def test_record_metrics_computes_mpg(self, trips, trip):
        metrics = trips.record_metrics(trip.id, 500.0, fuel_volume_gal=80.0, fuel_cost=Decimal("290.40"))
        assert metrics.mpg == 6.25

    def test_record_metrics_replaces(self, trips, trip):
        first = trips.record_metrics(trip.id, 100.0)
        second = trips.record_metrics(trip.id, 120.0, fuel_volume_gal=20.0)
        assert first.id == second.id
        assert second.total_miles == 120.0
        assert second.mpg == 6.0

    def test_negative_metrics_rejected(self, trips, trip):
        with pytest.raises(ValueError):
            trips.record_metrics(trip.id, -1.0)


class TestTripLifecycleProperties:
    """Property: arbitrary transition attempts never break the lifecycle."""

    @settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(targets=st.lists(st.sampled_from([s.value for s in TripStatus]), max_size=10))
    def test_random_walk_keeps_invariants(self, trips, vehicle, driver, clock, targets):
        trip = trips.create_trip(vehicle.id, driver.id, clock.now())
        pickup = trips.add_stop(trip.id, "pickup")
        drop = trips.add_stop(trip.id, "drop")
        trips.complete_stop(pickup.id)
        trips.complete_stop(drop.id)
        trips.record_metrics(trip.id, 10.0)

        history = [trip.status]
        for target in targets:
            before = trip.status
            try:
                trips.transition(trip.id, target)
            except InvalidTransition:
                assert trip.status == before
                continue
            assert TripStateMachine.can_transition(before, target)
            history.append(trip.status)

        # end_at is stamped exactly when a terminal state was entered
        assert (trip.end_at is not None) == TripStateMachine.is_terminal(trip.status)
        if "in_transit" in history:
            assert trip.actual_start_at is not None
        else:
            assert trip.actual_start_at is None
