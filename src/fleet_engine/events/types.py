"""Domain event types for fleet operations.

Events are frozen dataclasses carrying an ``EventMetadata`` plus the ids
and statuses of what changed. They are emitted only after the mutation
they describe succeeded, and ``to_dict`` gives a JSON-safe form for audit
export.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    AUTHORIZATION = "authorization"
    ACCOUNT = "account"
    TRIP = "trip"
    FLEET = "fleet"
    DOCUMENT = "document"
    ACCOUNTING = "accounting"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID
    actor_id: UUID | None
    actor_type: str  # 'user' or 'system'
    source_service: str = "fleet_engine"
    version: int = 1

    @classmethod
    def create(
        cls,
        timestamp: datetime,
        actor_id: UUID | None = None,
        correlation_id: UUID | None = None,
        event_id: UUID | None = None,
    ) -> EventMetadata:
        """Create metadata. The timestamp comes from the caller's clock."""
        return cls(
            event_id=event_id or uuid4(),
            timestamp=timestamp,
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type="user" if actor_id else "system",
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events.

    Subclasses name their routing category in the class statement:
    ``class TripTransitioned(DomainEvent, category=EventCategory.TRIP)``.
    """

    category: ClassVar[EventCategory]

    metadata: EventMetadata

    def __init_subclass__(cls, category: EventCategory | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if category is not None:
            cls.category = category

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_serialize(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Authorization Events
# =============================================================================


@dataclass(frozen=True)
class RoleGranted(DomainEvent, category=EventCategory.AUTHORIZATION):
    user_id: UUID
    role_id: UUID


@dataclass(frozen=True)
class RoleRevoked(DomainEvent, category=EventCategory.AUTHORIZATION):
    user_id: UUID
    role_id: UUID


@dataclass(frozen=True)
class PermissionGranted(DomainEvent, category=EventCategory.AUTHORIZATION):
    role_id: UUID
    permission_id: UUID


@dataclass(frozen=True)
class PermissionRevoked(DomainEvent, category=EventCategory.AUTHORIZATION):
    role_id: UUID
    permission_id: UUID


@dataclass(frozen=True)
class AccessDenied(DomainEvent, category=EventCategory.AUTHORIZATION):
    """An intent was refused by the permission resolver."""

    user_id: UUID
    permission: str


# =============================================================================
# Account Events
# =============================================================================


@dataclass(frozen=True)
class UserStatusChanged(DomainEvent, category=EventCategory.ACCOUNT):
    user_id: UUID
    from_status: str
    to_status: str


# =============================================================================
# Lifecycle Events
# =============================================================================


@dataclass(frozen=True)
class TripTransitioned(DomainEvent, category=EventCategory.TRIP):
    trip_id: UUID
    from_status: str
    to_status: str


@dataclass(frozen=True)
class VehicleStatusChanged(DomainEvent, category=EventCategory.FLEET):
    vehicle_id: UUID
    from_status: str
    to_status: str


@dataclass(frozen=True)
class AssignmentTransitioned(DomainEvent, category=EventCategory.FLEET):
    assignment_id: UUID
    vehicle_id: UUID
    from_status: str
    to_status: str


@dataclass(frozen=True)
class MaintenanceTransitioned(DomainEvent, category=EventCategory.FLEET):
    maintenance_id: UUID
    vehicle_id: UUID
    from_status: str
    to_status: str


@dataclass(frozen=True)
class ComplianceEventTransitioned(DomainEvent, category=EventCategory.FLEET):
    compliance_event_id: UUID
    from_status: str
    to_status: str


# =============================================================================
# Document Events
# =============================================================================


@dataclass(frozen=True)
class DocumentVersionRecorded(DomainEvent, category=EventCategory.DOCUMENT):
    document_id: UUID
    document_version_id: UUID
    version: int
    has_ocr: bool


@dataclass(frozen=True)
class DocumentLinkChanged(DomainEvent, category=EventCategory.DOCUMENT):
    link_id: UUID
    document_id: UUID
    from_status: str | None
    to_status: str


# =============================================================================
# Accounting Events
# =============================================================================


@dataclass(frozen=True)
class EscrowTransactionPosted(DomainEvent, category=EventCategory.ACCOUNTING):
    escrow_account_id: UUID
    escrow_transaction_id: UUID
    transaction_type: str
    amount: Decimal
    new_balance: Decimal


@dataclass(frozen=True)
class SettlementDrafted(DomainEvent, category=EventCategory.ACCOUNTING):
    settlement_id: UUID
    unit_id: UUID
    net_amount: Decimal
    fuel_policy: str


@dataclass(frozen=True)
class SettlementIssued(DomainEvent, category=EventCategory.ACCOUNTING):
    settlement_id: UUID
    unit_id: UUID
    net_amount: Decimal
    issued_at: datetime
