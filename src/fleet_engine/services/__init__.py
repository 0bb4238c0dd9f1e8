"""Fleet engine services."""

from fleet_engine.services.accounts import AccountService
from fleet_engine.services.catalog import (
    DEFAULT_ROLE_GRANTS,
    PermissionCode,
    RoleCode,
    is_cataloged,
    seed_catalog,
)
from fleet_engine.services.documents import (
    DocumentService,
    DocumentType,
    LinkChange,
    OCRQuality,
    ocr_quality,
)
from fleet_engine.services.escrow import (
    BalanceCheck,
    EscrowService,
    EscrowTransactionType,
    PostingResult,
)
from fleet_engine.services.fleet import FleetService, StatusChange
from fleet_engine.services.permission_resolver import PermissionResolver, PermissionSnapshot
from fleet_engine.services.role_admin import GrantResult, RoleAdministrationService
from fleet_engine.services.settlements import FuelPolicy, SettlementService
from fleet_engine.services.state_machine import (
    AssignmentStateMachine,
    ComplianceEventStateMachine,
    DocumentLinkStateMachine,
    MaintenanceStateMachine,
    TripStateMachine,
    TripStatus,
    UserStateMachine,
    VehicleStateMachine,
    VehicleStatus,
)
from fleet_engine.services.trip_service import StopType, TripProgress, TripService
from fleet_engine.services.validity import (
    EntityKind,
    ValidityEngine,
    ValidityPolicy,
    ValidityReport,
)

__all__ = [
    # Authorization
    "PermissionCode",
    "RoleCode",
    "DEFAULT_ROLE_GRANTS",
    "is_cataloged",
    "seed_catalog",
    "PermissionResolver",
    "PermissionSnapshot",
    "RoleAdministrationService",
    "GrantResult",
    "AccountService",
    # Lifecycles
    "TripStateMachine",
    "TripStatus",
    "VehicleStateMachine",
    "VehicleStatus",
    "AssignmentStateMachine",
    "MaintenanceStateMachine",
    "ComplianceEventStateMachine",
    "DocumentLinkStateMachine",
    "UserStateMachine",
    "TripService",
    "TripProgress",
    "StopType",
    "FleetService",
    "StatusChange",
    # Documents and validity
    "DocumentService",
    "DocumentType",
    "OCRQuality",
    "ocr_quality",
    "LinkChange",
    "ValidityEngine",
    "ValidityPolicy",
    "ValidityReport",
    "EntityKind",
    # Accounting
    "EscrowService",
    "EscrowTransactionType",
    "PostingResult",
    "BalanceCheck",
    "SettlementService",
    "FuelPolicy",
]
