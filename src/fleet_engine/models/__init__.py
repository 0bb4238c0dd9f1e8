"""ORM models for the fleet engine."""

from fleet_engine.models.accounting import EscrowAccount, EscrowTransaction, Settlement
from fleet_engine.models.auth import Permission, Role, RolePermission, User, UserRole
from fleet_engine.models.base import Base, TimestampMixin, UTCDateTime
from fleet_engine.models.contracts import ComplianceEvent, LeaseContract, PaymentSchedule
from fleet_engine.models.documents import Document, DocumentLink, DocumentVersion, VehicleDocument
from fleet_engine.models.fleet import (
    Advance,
    Assignment,
    Deduction,
    FuelRecord,
    MaintenanceRecord,
    Trip,
    TripMetrics,
    TripStop,
    Vehicle,
)

__all__ = [
    "Advance",
    "Assignment",
    "Base",
    "ComplianceEvent",
    "Deduction",
    "Document",
    "DocumentLink",
    "DocumentVersion",
    "EscrowAccount",
    "EscrowTransaction",
    "FuelRecord",
    "LeaseContract",
    "MaintenanceRecord",
    "PaymentSchedule",
    "Permission",
    "Role",
    "RolePermission",
    "Settlement",
    "TimestampMixin",
    "Trip",
    "TripMetrics",
    "TripStop",
    "UTCDateTime",
    "User",
    "UserRole",
    "Vehicle",
    "VehicleDocument",
]
