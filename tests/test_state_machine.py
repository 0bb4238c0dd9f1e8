"""Tests for lifecycle transition tables."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from fleet_engine.errors import InvalidTransition
from fleet_engine.models import Trip, TripMetrics, TripStop
from fleet_engine.services.state_machine import (
    AssignmentStateMachine,
    ComplianceEventStateMachine,
    DocumentLinkStateMachine,
    EscrowAccountStateMachine,
    MaintenanceStateMachine,
    SettlementStateMachine,
    TripStateMachine,
    TripStatus,
    UserStateMachine,
    VehicleStateMachine,
    VehicleStatus,
    status_value,
)


class TestTripStateMachine:
    """Test trip transitions."""

    def test_valid_transitions(self):
        """Test that the forward path and cancellation are allowed."""
        # planned → loaded → in_transit → delivered → completed
        assert TripStateMachine.can_transition("planned", "loaded") is True
        assert TripStateMachine.can_transition("loaded", "in_transit") is True
        assert TripStateMachine.can_transition("in_transit", "delivered") is True
        assert TripStateMachine.can_transition("delivered", "completed") is True

        for status in ("planned", "loaded", "in_transit", "delivered"):
            assert TripStateMachine.can_transition(status, "cancelled") is True

    def test_invalid_transitions(self):
        """Test that skips, reversals and exits from terminal states are blocked."""
        assert TripStateMachine.can_transition("planned", "completed") is False
        assert TripStateMachine.can_transition("planned", "in_transit") is False
        assert TripStateMachine.can_transition("delivered", "in_transit") is False
        assert TripStateMachine.can_transition("completed", "cancelled") is False
        assert TripStateMachine.can_transition("cancelled", "planned") is False

    def test_validate_transition_raises(self):
        """Test that validate_transition raises with plain status strings."""
        with pytest.raises(InvalidTransition) as exc_info:
            TripStateMachine.validate_transition("planned", TripStatus.COMPLETED)

        assert exc_info.value.entity == "trip"
        assert exc_info.value.from_status == "planned"
        assert exc_info.value.to_status == "completed"
        assert "TripStatus" not in str(exc_info.value)

    def test_terminal_states(self):
        assert TripStateMachine.is_terminal("completed") is True
        assert TripStateMachine.is_terminal("cancelled") is True
        assert TripStateMachine.is_terminal("delivered") is False
        assert TripStateMachine.is_terminal("unknown") is False

    def test_get_next_statuses(self):
        assert TripStateMachine.get_next_statuses("planned") == ["loaded", "cancelled"]
        assert TripStateMachine.get_next_statuses("completed") == []
        assert TripStateMachine.get_next_statuses("bogus") == []

    def test_in_progress(self):
        assert TripStateMachine.is_in_progress("loaded") is True
        assert TripStateMachine.is_in_progress("in_transit") is True
        assert TripStateMachine.is_in_progress("delivered") is False


class TestTripGuards:
    """Guard checks for individual trip transitions."""

    def _trip(self, status):
        return Trip(id=uuid4(), vehicle_id=uuid4(), driver_user_id=uuid4(), status=status)

    def _stop(self, stop_type, done=False):
        return TripStop(
            id=uuid4(),
            stop_type=stop_type,
            stop_sequence=1,
            timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc) if done else None,
        )

    def test_loaded_requires_pickup(self):
        errors = TripStateMachine.validate_trip_for_transition(
            self._trip("planned"), "loaded", [self._stop("drop")], None
        )
        assert errors == ["Trip has no pickup stop"]

    def test_loaded_with_pickup_passes(self):
        errors = TripStateMachine.validate_trip_for_transition(
            self._trip("planned"), "loaded", [self._stop("pickup")], None
        )
        assert errors == []

    def test_delivered_requires_completed_drop(self):
        """A drop stop without a timestamp does not count."""
        errors = TripStateMachine.validate_trip_for_transition(
            self._trip("in_transit"), "delivered", [self._stop("pickup", True), self._stop("drop")], None
        )
        assert errors == ["Trip has no completed drop stop"]

    def test_completed_requires_metrics(self):
        trip = self._trip("delivered")
        assert TripStateMachine.validate_trip_for_transition(trip, "completed", [], None) == [
            "Trip metrics have not been recorded"
        ]
        metrics = TripMetrics(id=uuid4(), trip_id=trip.id, total_miles=10.0)
        assert TripStateMachine.validate_trip_for_transition(trip, "completed", [], metrics) == []

    def test_invalid_edge_reported_first(self):
        errors = TripStateMachine.validate_trip_for_transition(
            self._trip("planned"), "completed", [], None
        )
        assert errors == ["Cannot transition from 'planned' to 'completed'"]

    def test_cancel_has_no_guard(self):
        errors = TripStateMachine.validate_trip_for_transition(
            self._trip("in_transit"), "cancelled", [], None
        )
        assert errors == []


class TestOtherMachines:
    """Transition tables for the remaining lifecycles."""

    def test_vehicle(self):
        assert VehicleStateMachine.can_transition("active", "in_maintenance") is True
        assert VehicleStateMachine.can_transition("out_of_service", "active") is False
        assert VehicleStateMachine.can_transition("out_of_service", "in_maintenance") is True
        assert VehicleStateMachine.is_terminal("out_of_service") is False
        assert VehicleStatus.IN_TRANSIT.is_operational is True
        assert VehicleStateMachine.is_operational("at_yard") is False

    def test_assignment(self):
        assert AssignmentStateMachine.can_transition("pending", "active") is True
        assert AssignmentStateMachine.can_transition("suspended", "active") is True
        assert AssignmentStateMachine.can_transition("pending", "completed") is False
        assert AssignmentStateMachine.is_terminal("completed") is True

    def test_maintenance(self):
        assert MaintenanceStateMachine.can_transition("scheduled", "in_progress") is True
        assert MaintenanceStateMachine.can_transition("scheduled", "completed") is False
        assert MaintenanceStateMachine.is_terminal("cancelled") is True

    def test_compliance_event(self):
        assert ComplianceEventStateMachine.can_transition("pending", "overdue") is True
        assert ComplianceEventStateMachine.can_transition("overdue", "completed") is True
        assert ComplianceEventStateMachine.can_transition("overdue", "pending") is False

    def test_document_link(self):
        assert DocumentLinkStateMachine.can_transition("inactive", "active") is True
        assert DocumentLinkStateMachine.can_transition("pending", "expired") is False

    def test_user_has_no_terminal_state(self):
        """Accounts can always be reactivated; nothing is deleted."""
        for status in UserStateMachine.VALID_TRANSITIONS:
            assert UserStateMachine.is_terminal(status) is False
        assert UserStateMachine.can_transition("inactive", "active") is True
        assert UserStateMachine.can_transition("active", "pending") is False

    def test_settlement_issues_once(self):
        assert SettlementStateMachine.can_transition("draft", "issued") is True
        assert SettlementStateMachine.can_transition("issued", "draft") is False
        assert SettlementStateMachine.is_terminal("issued") is True

    def test_escrow_account(self):
        assert EscrowAccountStateMachine.can_transition("frozen", "active") is True
        assert EscrowAccountStateMachine.can_transition("closed", "active") is False


def test_status_value_normalizes_enums():
    assert status_value(TripStatus.IN_TRANSIT) == "in_transit"
    assert status_value("loaded") == "loaded"
