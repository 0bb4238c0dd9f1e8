"""Status enumerations and transition tables for every lifecycle entity."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING, ClassVar

from fleet_engine.errors import InvalidTransition

if TYPE_CHECKING:
    from fleet_engine.models import Trip, TripMetrics, TripStop


class TripStatus(str, Enum):
    PLANNED = "planned"
    LOADED = "loaded"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VehicleStatus(str, Enum):
    ACTIVE = "active"
    IN_TRANSIT = "in_transit"
    IN_MAINTENANCE = "in_maintenance"
    OUT_OF_SERVICE = "out_of_service"
    AT_YARD = "at_yard"

    @property
    def is_operational(self) -> bool:
        return self in (VehicleStatus.ACTIVE, VehicleStatus.IN_TRANSIT)


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MaintenanceStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ComplianceEventStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class LinkStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    PENDING = "pending"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING = "pending"


class SettlementStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"


def status_value(status: object) -> str:
    """Plain string for a status given as an enum member or a string."""
    return status.value if isinstance(status, Enum) else str(status)


class StatusMachine:
    """Transition table lookups shared by every lifecycle.

    Subclasses set ``ENTITY`` and ``VALID_TRANSITIONS``. A status with an
    empty list of next statuses is terminal.
    """

    ENTITY: ClassVar[str] = "entity"
    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransition if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransition(cls.ENTITY, status_value(from_status), status_value(to_status))

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return [status_value(s) for s in cls.VALID_TRANSITIONS.get(current_status, [])]

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.VALID_TRANSITIONS and not cls.VALID_TRANSITIONS[status]

    @classmethod
    def is_known(cls, status: str) -> bool:
        return status in cls.VALID_TRANSITIONS


class TripStateMachine(StatusMachine):
    """Trip progression.

    planned → loaded → in_transit → delivered → completed, with cancelled
    reachable from every non-terminal state.
    """

    ENTITY = "trip"

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        TripStatus.PLANNED: [TripStatus.LOADED, TripStatus.CANCELLED],
        TripStatus.LOADED: [TripStatus.IN_TRANSIT, TripStatus.CANCELLED],
        TripStatus.IN_TRANSIT: [TripStatus.DELIVERED, TripStatus.CANCELLED],
        TripStatus.DELIVERED: [TripStatus.COMPLETED, TripStatus.CANCELLED],
        TripStatus.COMPLETED: [],  # Terminal state
        TripStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses where the trip is on the road
    IN_PROGRESS = {TripStatus.LOADED, TripStatus.IN_TRANSIT}

    # Entering one of these stamps end_at
    ENDING = {TripStatus.COMPLETED, TripStatus.CANCELLED}

    @classmethod
    def is_in_progress(cls, status: str) -> bool:
        return status in cls.IN_PROGRESS

    @classmethod
    def validate_trip_for_transition(
        cls,
        trip: Trip,
        to_status: str,
        stops: Sequence[TripStop],
        metrics: TripMetrics | None,
    ) -> list[str]:
        """Validate a trip for a specific transition, returning any errors.

        Returns list of error messages (empty if valid). ``actual_start_at``
        is not required for loaded → in_transit here because the service
        stamps it on the way in.
        """
        errors: list[str] = []
        from_status = trip.status

        if not cls.can_transition(from_status, to_status):
            errors.append(
                f"Cannot transition from '{status_value(from_status)}' to '{status_value(to_status)}'"
            )
            return errors

        if to_status == TripStatus.LOADED:
            if not any(s.stop_type == "pickup" for s in stops):
                errors.append("Trip has no pickup stop")

        elif to_status == TripStatus.DELIVERED:
            if not any(s.stop_type == "drop" and s.timestamp is not None for s in stops):
                errors.append("Trip has no completed drop stop")

        elif to_status == TripStatus.COMPLETED:
            if metrics is None:
                errors.append("Trip metrics have not been recorded")

        return errors


class VehicleStateMachine(StatusMachine):
    ENTITY = "vehicle"

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        VehicleStatus.ACTIVE: [
            VehicleStatus.IN_TRANSIT,
            VehicleStatus.IN_MAINTENANCE,
            VehicleStatus.AT_YARD,
            VehicleStatus.OUT_OF_SERVICE,
        ],
        VehicleStatus.IN_TRANSIT: [
            VehicleStatus.ACTIVE,
            VehicleStatus.AT_YARD,
            VehicleStatus.OUT_OF_SERVICE,
        ],
        VehicleStatus.IN_MAINTENANCE: [
            VehicleStatus.ACTIVE,
            VehicleStatus.AT_YARD,
            VehicleStatus.OUT_OF_SERVICE,
        ],
        VehicleStatus.AT_YARD: [
            VehicleStatus.ACTIVE,
            VehicleStatus.IN_MAINTENANCE,
            VehicleStatus.OUT_OF_SERVICE,
        ],
        VehicleStatus.OUT_OF_SERVICE: [VehicleStatus.IN_MAINTENANCE, VehicleStatus.AT_YARD],
    }

    @classmethod
    def is_operational(cls, status: str) -> bool:
        return status in (VehicleStatus.ACTIVE, VehicleStatus.IN_TRANSIT)


class AssignmentStateMachine(StatusMachine):
    ENTITY = "assignment"

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        AssignmentStatus.PENDING: [AssignmentStatus.ACTIVE, AssignmentStatus.CANCELLED],
        AssignmentStatus.ACTIVE: [
            AssignmentStatus.SUSPENDED,
            AssignmentStatus.COMPLETED,
            AssignmentStatus.CANCELLED,
        ],
        AssignmentStatus.SUSPENDED: [AssignmentStatus.ACTIVE, AssignmentStatus.CANCELLED],
        AssignmentStatus.COMPLETED: [],
        AssignmentStatus.CANCELLED: [],
    }


class MaintenanceStateMachine(StatusMachine):
    ENTITY = "maintenance"

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        MaintenanceStatus.SCHEDULED: [MaintenanceStatus.IN_PROGRESS, MaintenanceStatus.CANCELLED],
        MaintenanceStatus.IN_PROGRESS: [MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED],
        MaintenanceStatus.COMPLETED: [],
        MaintenanceStatus.CANCELLED: [],
    }


class ComplianceEventStateMachine(StatusMachine):
    ENTITY = "compliance_event"

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        ComplianceEventStatus.PENDING: [
            ComplianceEventStatus.COMPLETED,
            ComplianceEventStatus.OVERDUE,
            ComplianceEventStatus.CANCELLED,
        ],
        ComplianceEventStatus.OVERDUE: [
            ComplianceEventStatus.COMPLETED,
            ComplianceEventStatus.CANCELLED,
        ],
        ComplianceEventStatus.COMPLETED: [],
        ComplianceEventStatus.CANCELLED: [],
    }


class DocumentLinkStateMachine(StatusMachine):
    ENTITY = "document_link"

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        LinkStatus.PENDING: [LinkStatus.ACTIVE, LinkStatus.INACTIVE],
        LinkStatus.ACTIVE: [LinkStatus.INACTIVE, LinkStatus.EXPIRED],
        LinkStatus.EXPIRED: [LinkStatus.ACTIVE, LinkStatus.INACTIVE],
        LinkStatus.INACTIVE: [LinkStatus.ACTIVE],
    }


class UserStateMachine(StatusMachine):
    """Account standing. There is no deleted state; inactive is the soft delete."""

    ENTITY = "user"

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        UserStatus.PENDING: [UserStatus.ACTIVE, UserStatus.INACTIVE],
        UserStatus.ACTIVE: [UserStatus.SUSPENDED, UserStatus.INACTIVE],
        UserStatus.SUSPENDED: [UserStatus.ACTIVE, UserStatus.INACTIVE],
        UserStatus.INACTIVE: [UserStatus.ACTIVE],
    }


class SettlementStateMachine(StatusMachine):
    ENTITY = "settlement"

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        SettlementStatus.DRAFT: [SettlementStatus.ISSUED],
        SettlementStatus.ISSUED: [],
    }


class EscrowAccountStatus(str, Enum):
    ACTIVE = "active"
    FROZEN = "frozen"
    CLOSED = "closed"


class EscrowAccountStateMachine(StatusMachine):
    """Only active accounts accept postings. Closed is final."""

    ENTITY = "escrow_account"

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        EscrowAccountStatus.ACTIVE: [EscrowAccountStatus.FROZEN, EscrowAccountStatus.CLOSED],
        EscrowAccountStatus.FROZEN: [EscrowAccountStatus.ACTIVE, EscrowAccountStatus.CLOSED],
        EscrowAccountStatus.CLOSED: [],
    }
