"""Vehicles, driver assignments, maintenance and compliance events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_engine.errors import Conflict, InvalidTransition
from fleet_engine.models import (
    Assignment,
    ComplianceEvent,
    LeaseContract,
    MaintenanceRecord,
    User,
    Vehicle,
)
from fleet_engine.runtime import Clock, IdFactory, SystemClock, as_utc, default_id_factory
from fleet_engine.services.state_machine import (
    AssignmentStateMachine,
    AssignmentStatus,
    ComplianceEventStateMachine,
    ComplianceEventStatus,
    MaintenanceStateMachine,
    MaintenanceStatus,
    StatusMachine,
    VehicleStateMachine,
    VehicleStatus,
    status_value,
)
from fleet_engine.services.validity import ValidityEngine
from fleet_engine.store import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_INTERVAL_DAYS = 90


@dataclass(frozen=True)
class StatusChange:
    """A status write that happened, plus any it caused on other rows."""

    entity: Any
    from_status: str
    to_status: str
    caused: tuple[StatusChange, ...] = ()


class FleetService:
    """Status changes for vehicles and the records that hang off them."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        new_id: IdFactory = default_id_factory,
        service_interval_days: int = DEFAULT_SERVICE_INTERVAL_DAYS,
        validity: ValidityEngine | None = None,
    ):
        self.session = session
        self.store = EntityStore(session)
        self.clock = clock or SystemClock()
        self.new_id = new_id
        self.service_interval_days = service_interval_days
        self.validity = validity or ValidityEngine()

    def _apply(
        self,
        machine: type[StatusMachine],
        model: type,
        entity: Any,
        to_status: str,
        extra: dict[str, Any] | None = None,
    ) -> str:
        """Validate and write one status change. Returns the previous status."""
        from_status = entity.status
        target = status_value(to_status)
        machine.validate_transition(from_status, target)

        values: dict[str, Any] = {"status": target}
        if hasattr(model, "updated_at"):
            values["updated_at"] = self.clock.now()
        values.update(extra or {})

        if not self.store.compare_and_set(model, entity.id, from_status, values):
            raise InvalidTransition(
                machine.ENTITY,
                entity.status,
                target,
                f"status changed concurrently from '{from_status}'",
            )
        logger.info("%s %s %s -> %s", machine.ENTITY, entity.id, from_status, target)
        return from_status

    # ------------------------------------------------------------------
    # Vehicles
    # ------------------------------------------------------------------

    def register_vehicle(
        self,
        unit_number: str,
        vin: str,
        make: str | None = None,
        model: str | None = None,
        year: int | None = None,
        current_mileage: float = 0.0,
    ) -> Vehicle:
        if self.store.find_one(Vehicle, Vehicle.unit_number == unit_number) is not None:
            raise Conflict("vehicle", "unit_number", unit_number)
        if self.store.find_one(Vehicle, Vehicle.vin == vin) is not None:
            raise Conflict("vehicle", "vin", vin)
        now = self.clock.now()
        return self.store.add(
            Vehicle(
                id=self.new_id(),
                unit_number=unit_number,
                vin=vin,
                make=make,
                model=model,
                year=year,
                current_mileage=current_mileage,
                status=VehicleStatus.ACTIVE.value,
                created_at=now,
                updated_at=now,
            )
        )

    def change_vehicle_status(self, vehicle_id: UUID, to_status: str) -> StatusChange:
        vehicle = self.store.require(Vehicle, vehicle_id)
        from_status = self._apply(VehicleStateMachine, Vehicle, vehicle, to_status)
        return StatusChange(vehicle, from_status, vehicle.status)

    def is_service_due(self, vehicle: Vehicle, as_of: datetime | None = None) -> bool:
        """True when the last service is unknown or older than the service interval."""
        if vehicle.last_service_at is None:
            return True
        as_of = as_of or self.clock.now()
        due_at = as_utc(vehicle.last_service_at) + timedelta(days=self.service_interval_days)
        return self.validity.is_expired(due_at, as_of)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def create_assignment(
        self,
        vehicle_id: UUID,
        driver_user_id: UUID,
        start_date: date,
        end_date: date | None = None,
        contract_id: UUID | None = None,
        notes: str | None = None,
    ) -> Assignment:
        self.store.require(Vehicle, vehicle_id)
        self.store.require(User, driver_user_id)
        if contract_id is not None:
            self.store.require(LeaseContract, contract_id)
        if end_date is not None and end_date < start_date:
            raise ValueError("end_date must not precede start_date")
        now = self.clock.now()
        return self.store.add(
            Assignment(
                id=self.new_id(),
                vehicle_id=vehicle_id,
                driver_user_id=driver_user_id,
                contract_id=contract_id,
                start_date=start_date,
                end_date=end_date,
                notes=notes,
                status=AssignmentStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
        )

    def transition_assignment(self, assignment_id: UUID, to_status: str) -> StatusChange:
        """Move an assignment along its lifecycle.

        Activation requires a vehicle that is not out of service and has no
        other active assignment. Completion closes ``end_date`` if open.
        """
        assignment = self.store.require(Assignment, assignment_id)
        target = status_value(to_status)
        extra: dict[str, Any] = {}

        if target == AssignmentStatus.ACTIVE:
            vehicle = self.store.require(Vehicle, assignment.vehicle_id)
            if vehicle.status == VehicleStatus.OUT_OF_SERVICE:
                raise InvalidTransition(
                    "assignment", assignment.status, target, "vehicle is out of service"
                )
            other = self.store.find_one(
                Assignment,
                Assignment.vehicle_id == assignment.vehicle_id,
                Assignment.status == AssignmentStatus.ACTIVE.value,
                Assignment.id != assignment.id,
            )
            if other is not None:
                raise InvalidTransition(
                    "assignment",
                    assignment.status,
                    target,
                    f"vehicle already has active assignment {other.id}",
                )

        if target == AssignmentStatus.COMPLETED and assignment.end_date is None:
            extra["end_date"] = max(self.clock.now().date(), assignment.start_date)

        from_status = self._apply(AssignmentStateMachine, Assignment, assignment, target, extra)
        return StatusChange(assignment, from_status, assignment.status)

    def is_assignment_active(self, assignment: Assignment, as_of: datetime | None = None) -> bool:
        """Active status and the as-of day inside [start_date, end_date]."""
        if assignment.status != AssignmentStatus.ACTIVE:
            return False
        day = as_utc(as_of or self.clock.now()).date()
        if day < assignment.start_date:
            return False
        return assignment.end_date is None or day <= assignment.end_date

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def schedule_maintenance(
        self,
        vehicle_id: UUID,
        scheduled_for: date,
        description: str,
        maintenance_type: str = "preventive",
        cost: Decimal = Decimal("0"),
        vendor: str | None = None,
        created_by: UUID | None = None,
    ) -> MaintenanceRecord:
        self.store.require(Vehicle, vehicle_id)
        return self.store.add(
            MaintenanceRecord(
                id=self.new_id(),
                vehicle_id=vehicle_id,
                scheduled_for=scheduled_for,
                description=description,
                maintenance_type=maintenance_type,
                cost=Decimal(cost),
                vendor=vendor,
                created_by=created_by,
                status=MaintenanceStatus.SCHEDULED.value,
                created_at=self.clock.now(),
            )
        )

    def transition_maintenance(
        self,
        maintenance_id: UUID,
        to_status: str,
        odometer: float | None = None,
    ) -> StatusChange:
        """Move a maintenance record, carrying the vehicle along.

        Starting puts the vehicle into maintenance when its own lifecycle
        allows it. Completing stamps the service date, raises the mileage to
        the odometer reading and returns the vehicle to active.
        """
        record = self.store.require(MaintenanceRecord, maintenance_id)
        target = status_value(to_status)
        now = self.clock.now()
        extra: dict[str, Any] = {}
        if target == MaintenanceStatus.COMPLETED:
            extra["completed_at"] = now
            if odometer is not None:
                extra["odometer"] = odometer

        from_status = self._apply(MaintenanceStateMachine, MaintenanceRecord, record, target, extra)

        vehicle = self.store.require(Vehicle, record.vehicle_id)
        caused: list[StatusChange] = []

        if target == MaintenanceStatus.IN_PROGRESS:
            if VehicleStateMachine.can_transition(vehicle.status, VehicleStatus.IN_MAINTENANCE):
                caused.append(self.change_vehicle_status(vehicle.id, VehicleStatus.IN_MAINTENANCE))

        elif target == MaintenanceStatus.COMPLETED:
            vehicle.last_service_at = now
            reading = record.odometer
            if reading is not None and reading > (vehicle.current_mileage or 0.0):
                vehicle.current_mileage = reading
            vehicle.updated_at = now
            self.session.flush()
            if vehicle.status == VehicleStatus.IN_MAINTENANCE:
                caused.append(self.change_vehicle_status(vehicle.id, VehicleStatus.ACTIVE))

        return StatusChange(record, from_status, record.status, tuple(caused))

    # ------------------------------------------------------------------
    # Compliance events
    # ------------------------------------------------------------------

    def create_compliance_event(
        self,
        event_type: str,
        due_date: date | None,
        vehicle_id: UUID | None = None,
        contract_id: UUID | None = None,
        description: str | None = None,
        created_by: UUID | None = None,
    ) -> ComplianceEvent:
        if vehicle_id is not None:
            self.store.require(Vehicle, vehicle_id)
        if contract_id is not None:
            self.store.require(LeaseContract, contract_id)
        return self.store.add(
            ComplianceEvent(
                id=self.new_id(),
                event_type=event_type,
                due_date=due_date,
                vehicle_id=vehicle_id,
                contract_id=contract_id,
                description=description,
                created_by=created_by,
                status=ComplianceEventStatus.PENDING.value,
                created_at=self.clock.now(),
            )
        )

    def transition_compliance_event(self, event_id: UUID, to_status: str) -> StatusChange:
        event = self.store.require(ComplianceEvent, event_id)
        target = status_value(to_status)
        extra: dict[str, Any] = {}
        if target == ComplianceEventStatus.COMPLETED:
            extra["completed_at"] = self.clock.now()
        from_status = self._apply(ComplianceEventStateMachine, ComplianceEvent, event, target, extra)
        return StatusChange(event, from_status, event.status)

    def mark_overdue_events(self, as_of: datetime | None = None) -> list[StatusChange]:
        """Persist ``overdue`` for pending events whose due date has passed."""
        as_of = as_of or self.clock.now()
        pending = self.store.find(
            ComplianceEvent,
            ComplianceEvent.status == ComplianceEventStatus.PENDING.value,
            ComplianceEvent.due_date.is_not(None),
            order_by=ComplianceEvent.due_date,
        )
        changes = []
        for event in pending:
            if self.validity.is_overdue(event, as_of):
                changes.append(
                    self.transition_compliance_event(event.id, ComplianceEventStatus.OVERDUE)
                )
        return changes
