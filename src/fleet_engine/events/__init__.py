"""Domain events emitted by the fleet engine facade."""

from fleet_engine.events.emitter import EventBatch, EventEmitter, RecordingHandler
from fleet_engine.events.types import (
    AccessDenied,
    AssignmentTransitioned,
    ComplianceEventTransitioned,
    DocumentLinkChanged,
    DocumentVersionRecorded,
    DomainEvent,
    EscrowTransactionPosted,
    EventCategory,
    EventMetadata,
    MaintenanceTransitioned,
    PermissionGranted,
    PermissionRevoked,
    RoleGranted,
    RoleRevoked,
    SettlementDrafted,
    SettlementIssued,
    TripTransitioned,
    UserStatusChanged,
    VehicleStatusChanged,
)

__all__ = [
    "AccessDenied",
    "AssignmentTransitioned",
    "ComplianceEventTransitioned",
    "DocumentLinkChanged",
    "DocumentVersionRecorded",
    "DomainEvent",
    "EscrowTransactionPosted",
    "EventBatch",
    "EventCategory",
    "EventEmitter",
    "EventMetadata",
    "MaintenanceTransitioned",
    "PermissionGranted",
    "PermissionRevoked",
    "RecordingHandler",
    "RoleGranted",
    "RoleRevoked",
    "SettlementDrafted",
    "SettlementIssued",
    "TripTransitioned",
    "UserStatusChanged",
    "VehicleStatusChanged",
]
