"""FleetCore facade - the single entry point for the UI and HTTP layers.

Every intent runs the same pipeline:

1. authorize the acting user against the permission the intent needs
   (``actor_id=None`` marks a system-initiated call and skips the check)
2. let the owning service validate the lifecycle rule and mutate the store
3. emit domain events, only after the mutation succeeded

Expected business-rule failures come back as ``OperationResult`` values
instead of exceptions. Programmer errors still raise.

Usage:
    core = FleetCore(session, clock=SystemClock())

    result = core.transition_trip(trip_id, "loaded", actor_id=dispatcher_id)
    if not result.ok:
        print(result.error.code)

    trip = core.transition_trip(trip_id, "in_transit").unwrap()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fleet_engine.errors import FleetError, NotFound, Unauthorized
from fleet_engine.events import (
    AccessDenied,
    AssignmentTransitioned,
    ComplianceEventTransitioned,
    DocumentLinkChanged,
    DocumentVersionRecorded,
    DomainEvent,
    EscrowTransactionPosted,
    EventEmitter,
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
from fleet_engine.models import (
    Assignment,
    ComplianceEvent,
    Document,
    DocumentVersion,
    LeaseContract,
    MaintenanceRecord,
    PaymentSchedule,
    Settlement,
    Trip,
    TripMetrics,
    TripStop,
    User,
    VehicleDocument,
)
from fleet_engine.runtime import Clock, IdFactory, SystemClock, default_id_factory
from fleet_engine.services.accounts import AccountService
from fleet_engine.services.catalog import PermissionCode
from fleet_engine.services.documents import DocumentService
from fleet_engine.services.escrow import BalanceCheck, EscrowService, PostingResult
from fleet_engine.services.fleet import FleetService, StatusChange
from fleet_engine.services.permission_resolver import PermissionResolver
from fleet_engine.services.role_admin import GrantResult, RoleAdministrationService
from fleet_engine.services.settlements import FuelPolicy, SettlementService
from fleet_engine.services.state_machine import TripStatus, status_value
from fleet_engine.services.trip_service import TripService
from fleet_engine.services.validity import EntityKind, ValidityEngine, ValidityPolicy, ValidityReport
from fleet_engine.store import EntityStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_P = PermissionCode

# Entity kinds accepted by check_validity and the rows they load
VALIDITY_MODELS: dict[EntityKind, type] = {
    EntityKind.DOCUMENT: Document,
    EntityKind.VEHICLE_DOCUMENT: VehicleDocument,
    EntityKind.LEASE_CONTRACT: LeaseContract,
    EntityKind.COMPLIANCE_EVENT: ComplianceEvent,
    EntityKind.ASSIGNMENT: Assignment,
    EntityKind.PAYMENT_SCHEDULE: PaymentSchedule,
}


@dataclass(frozen=True)
class CoreConfig:
    """Configuration for the FleetCore facade."""

    validity: ValidityPolicy = field(default_factory=ValidityPolicy)
    service_interval_days: int = 90

    # Event emission
    emit_events: bool = True
    emit_access_denied: bool = True

    def __post_init__(self) -> None:
        if self.service_interval_days <= 0:
            raise ValueError("service_interval_days must be positive")

    @classmethod
    def from_settings(cls, settings: Any) -> CoreConfig:
        """Build from ``fleet_engine.config.Settings``."""
        return cls(
            validity=ValidityPolicy(
                default_window_days=settings.expiring_soon_days,
                compliance_window_days=settings.compliance_upcoming_days,
                assignment_window_days=settings.assignment_expiring_days,
            ),
            service_interval_days=settings.service_interval_days,
        )


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Success value or business-rule failure of a facade call."""

    ok: bool
    value: T | None = None
    error: FleetError | None = None

    @classmethod
    def success(cls, value: T) -> OperationResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: FleetError) -> OperationResult[T]:
        return cls(ok=False, error=error)

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, re-raising the failure if there is one."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class FleetCore:
    """Synchronous facade over the fleet engine services.

    The caller owns the session and its transaction boundary.
    """

    def __init__(
        self,
        session: Session,
        config: CoreConfig | None = None,
        clock: Clock | None = None,
        new_id: IdFactory = default_id_factory,
        event_emitter: EventEmitter | None = None,
    ) -> None:
        if session is None:
            raise TypeError("FleetCore requires a session")
        self._session = session
        self._config = config or CoreConfig()
        self._clock = clock or SystemClock()
        self._emitter = event_emitter
        self._store = EntityStore(session)

        # Wire up services
        self.validity = ValidityEngine(self._config.validity)
        self.resolver = PermissionResolver(session)
        self.roles = RoleAdministrationService(session, self._clock, new_id)
        self.accounts = AccountService(session, self._clock, new_id)
        self.trips = TripService(session, self._clock, new_id)
        self.fleet = FleetService(
            session,
            self._clock,
            new_id,
            service_interval_days=self._config.service_interval_days,
            validity=self.validity,
        )
        self.documents = DocumentService(session, self._clock, new_id, self.validity)
        self.escrow = EscrowService(session, self._clock, new_id)
        self.settlements = SettlementService(session, self._clock, new_id)

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _metadata(self, actor_id: UUID | None, correlation_id: UUID | None = None) -> EventMetadata:
        return EventMetadata.create(
            timestamp=self._clock.now(),
            actor_id=actor_id,
            correlation_id=correlation_id or uuid4(),
        )

    def _emit(self, events: list[DomainEvent]) -> None:
        if not self._emitter or not self._config.emit_events or not events:
            return
        with self._emitter.batch():
            for event in events:
                self._emitter.emit(event)

    def _run(
        self,
        operation: Callable[[], T],
        events: Callable[[T], list[DomainEvent]] | None = None,
    ) -> OperationResult[T]:
        try:
            value = operation()
        except FleetError as e:
            logger.info("Operation failed: %s", e)
            return OperationResult.failure(e)
        if events is not None:
            self._emit(events(value))
        return OperationResult.success(value)

    def _require_permission(self, actor_id: UUID | None, permission: PermissionCode) -> None:
        """Raise Unauthorized unless the actor holds ``permission``.

        ``actor_id=None`` is a system call and always passes.
        """
        if actor_id is None:
            return
        user = self._store.get(User, actor_id)
        if self.resolver.has_permission(user, permission, self._clock.now()):
            return

        if user is None:
            reason = "unknown user"
        elif not user.is_active:
            reason = f"account status is {user.status}"
        else:
            reason = "no role grants this permission"
        if self._config.emit_access_denied:
            self._emit([
                AccessDenied(
                    metadata=self._metadata(actor_id),
                    user_id=actor_id,
                    permission=permission.value,
                )
            ])
        raise Unauthorized(actor_id, permission.value, reason)

    def _status_events(
        self,
        change: StatusChange,
        actor_id: UUID | None,
        correlation_id: UUID | None = None,
    ) -> list[DomainEvent]:
        correlation_id = correlation_id or uuid4()
        events: list[DomainEvent] = []
        entity = change.entity
        metadata = self._metadata(actor_id, correlation_id)

        if isinstance(entity, Assignment):
            events.append(AssignmentTransitioned(
                metadata=metadata,
                assignment_id=entity.id,
                vehicle_id=entity.vehicle_id,
                from_status=change.from_status,
                to_status=change.to_status,
            ))
        elif isinstance(entity, ComplianceEvent):
            events.append(ComplianceEventTransitioned(
                metadata=metadata,
                compliance_event_id=entity.id,
                from_status=change.from_status,
                to_status=change.to_status,
            ))
        elif isinstance(entity, MaintenanceRecord):
            events.append(MaintenanceTransitioned(
                metadata=metadata,
                maintenance_id=entity.id,
                vehicle_id=entity.vehicle_id,
                from_status=change.from_status,
                to_status=change.to_status,
            ))
        else:
            events.append(VehicleStatusChanged(
                metadata=metadata,
                vehicle_id=entity.id,
                from_status=change.from_status,
                to_status=change.to_status,
            ))

        for caused in change.caused:
            events.extend(self._status_events(caused, actor_id, correlation_id))
        return events

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(
        self, user_id: UUID, permission_code: object, as_of: datetime | None = None
    ) -> bool:
        """Fail-closed permission check. Never raises for unknown users or codes."""
        user = self._store.get(User, user_id)
        return self.resolver.has_permission(user, permission_code, as_of or self._clock.now())

    def permissions_for(self, user_id: UUID) -> frozenset[str]:
        user = self._store.get(User, user_id)
        if user is None:
            return frozenset()
        return self.resolver.permissions_for(user)

    def grant_role(
        self, user_id: UUID, role_id: UUID, actor_id: UUID | None = None
    ) -> OperationResult[GrantResult]:
        def op() -> GrantResult:
            self._require_permission(actor_id, _P.ROLES_MANAGE)
            return self.roles.grant_role(user_id, role_id)

        return self._run(op, lambda r: [
            RoleGranted(metadata=self._metadata(actor_id), user_id=user_id, role_id=role_id)
        ] if r.changed else [])

    def revoke_role(
        self, user_id: UUID, role_id: UUID, actor_id: UUID | None = None
    ) -> OperationResult[GrantResult]:
        def op() -> GrantResult:
            self._require_permission(actor_id, _P.ROLES_MANAGE)
            return self.roles.revoke_role(user_id, role_id)

        return self._run(op, lambda r: [
            RoleRevoked(metadata=self._metadata(actor_id), user_id=user_id, role_id=role_id)
        ] if r.changed else [])

    def grant_permission(
        self, role_id: UUID, permission_id: UUID, actor_id: UUID | None = None
    ) -> OperationResult[GrantResult]:
        def op() -> GrantResult:
            self._require_permission(actor_id, _P.ROLES_MANAGE)
            return self.roles.grant_permission(role_id, permission_id)

        return self._run(op, lambda r: [
            PermissionGranted(
                metadata=self._metadata(actor_id), role_id=role_id, permission_id=permission_id
            )
        ] if r.changed else [])

    def revoke_permission(
        self, role_id: UUID, permission_id: UUID, actor_id: UUID | None = None
    ) -> OperationResult[GrantResult]:
        def op() -> GrantResult:
            self._require_permission(actor_id, _P.ROLES_MANAGE)
            return self.roles.revoke_permission(role_id, permission_id)

        return self._run(op, lambda r: [
            PermissionRevoked(
                metadata=self._metadata(actor_id), role_id=role_id, permission_id=permission_id
            )
        ] if r.changed else [])

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def register_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        phone: str | None = None,
        activate: bool = False,
        actor_id: UUID | None = None,
    ) -> OperationResult[User]:
        def op() -> User:
            self._require_permission(actor_id, _P.USERS_MANAGE)
            return self.accounts.register_user(username, email, password_hash, phone, activate)

        return self._run(op)

    def change_user_status(
        self, user_id: UUID, to_status: str, actor_id: UUID | None = None
    ) -> OperationResult[User]:
        from_status: list[str] = []

        def op() -> User:
            self._require_permission(actor_id, _P.USERS_MANAGE)
            user, previous = self.accounts.change_status(user_id, to_status)
            from_status.append(previous)
            return user

        return self._run(op, lambda u: [
            UserStatusChanged(
                metadata=self._metadata(actor_id),
                user_id=u.id,
                from_status=from_status[0],
                to_status=u.status,
            )
        ])

    def record_login(self, user_id: UUID) -> OperationResult[User]:
        return self._run(lambda: self.accounts.record_login(user_id))

    # ------------------------------------------------------------------
    # Trips
    # ------------------------------------------------------------------

    def create_trip(
        self,
        vehicle_id: UUID,
        driver_user_id: UUID,
        planned_start_at: datetime,
        actor_id: UUID | None = None,
        **details: Any,
    ) -> OperationResult[Trip]:
        def op() -> Trip:
            self._require_permission(actor_id, _P.TRIPS_CREATE)
            return self.trips.create_trip(vehicle_id, driver_user_id, planned_start_at, **details)

        return self._run(op)

    def add_stop(
        self, trip_id: UUID, stop_type: str, actor_id: UUID | None = None, **details: Any
    ) -> OperationResult[TripStop]:
        def op() -> TripStop:
            self._require_permission(actor_id, _P.TRIPS_UPDATE)
            return self.trips.add_stop(trip_id, stop_type, **details)

        return self._run(op)

    def complete_stop(
        self, stop_id: UUID, at: datetime | None = None, actor_id: UUID | None = None
    ) -> OperationResult[TripStop]:
        def op() -> TripStop:
            self._require_permission(actor_id, _P.TRIPS_UPDATE)
            return self.trips.complete_stop(stop_id, at)

        return self._run(op)

    def record_trip_metrics(
        self, trip_id: UUID, total_miles: float, actor_id: UUID | None = None, **details: Any
    ) -> OperationResult[TripMetrics]:
        def op() -> TripMetrics:
            self._require_permission(actor_id, _P.TRIPS_UPDATE)
            return self.trips.record_metrics(trip_id, total_miles, **details)

        return self._run(op)

    def transition_trip(
        self, trip_id: UUID, target_status: str, actor_id: UUID | None = None
    ) -> OperationResult[Trip]:
        """Move a trip along its lifecycle.

        Completing a trip needs ``trips.approve``; every other move needs
        ``trips.update``.
        """
        target = status_value(target_status)
        permission = _P.TRIPS_APPROVE if target == TripStatus.COMPLETED else _P.TRIPS_UPDATE
        from_status: list[str] = []

        def op() -> Trip:
            self._require_permission(actor_id, permission)
            result = self.trips.transition(trip_id, target)
            from_status.append(result.from_status)
            return result.trip

        return self._run(op, lambda t: [
            TripTransitioned(
                metadata=self._metadata(actor_id),
                trip_id=t.id,
                from_status=from_status[0],
                to_status=t.status,
            )
        ])

    # ------------------------------------------------------------------
    # Fleet
    # ------------------------------------------------------------------

    def change_vehicle_status(
        self, vehicle_id: UUID, to_status: str, actor_id: UUID | None = None
    ) -> OperationResult[StatusChange]:
        def op() -> StatusChange:
            self._require_permission(actor_id, _P.VEHICLES_UPDATE)
            return self.fleet.change_vehicle_status(vehicle_id, to_status)

        return self._run(op, lambda c: self._status_events(c, actor_id))

    def transition_assignment(
        self, assignment_id: UUID, to_status: str, actor_id: UUID | None = None
    ) -> OperationResult[StatusChange]:
        def op() -> StatusChange:
            self._require_permission(actor_id, _P.VEHICLES_UPDATE)
            return self.fleet.transition_assignment(assignment_id, to_status)

        return self._run(op, lambda c: self._status_events(c, actor_id))

    def transition_maintenance(
        self,
        maintenance_id: UUID,
        to_status: str,
        odometer: float | None = None,
        actor_id: UUID | None = None,
    ) -> OperationResult[StatusChange]:
        def op() -> StatusChange:
            self._require_permission(actor_id, _P.VEHICLES_UPDATE)
            return self.fleet.transition_maintenance(maintenance_id, to_status, odometer)

        return self._run(op, lambda c: self._status_events(c, actor_id))

    def transition_compliance_event(
        self, event_id: UUID, to_status: str, actor_id: UUID | None = None
    ) -> OperationResult[StatusChange]:
        def op() -> StatusChange:
            self._require_permission(actor_id, _P.DOCUMENTS_UPDATE)
            return self.fleet.transition_compliance_event(event_id, to_status)

        return self._run(op, lambda c: self._status_events(c, actor_id))

    # ------------------------------------------------------------------
    # Documents and validity
    # ------------------------------------------------------------------

    def record_document_version(
        self,
        document_id: UUID,
        created_by: UUID,
        ocr_text: str | None = None,
        ocr_confidence: float | None = None,
        file_uri: str | None = None,
        actor_id: UUID | None = None,
    ) -> OperationResult[DocumentVersion]:
        def op() -> DocumentVersion:
            self._require_permission(actor_id, _P.DOCUMENTS_UPDATE)
            return self.documents.record_version(
                document_id,
                created_by,
                ocr_text=ocr_text,
                ocr_confidence=ocr_confidence,
                file_uri=file_uri,
            )

        return self._run(op, lambda v: [
            DocumentVersionRecorded(
                metadata=self._metadata(actor_id or created_by),
                document_id=document_id,
                document_version_id=v.id,
                version=v.version,
                has_ocr=v.ocr_text is not None,
            )
        ])

    def latest_document_version(
        self, document_id: UUID, actor_id: UUID | None = None
    ) -> OperationResult[DocumentVersion | None]:
        def op() -> DocumentVersion | None:
            self._require_permission(actor_id, _P.DOCUMENTS_READ)
            self._store.require(Document, document_id)
            return self.documents.latest_version(document_id)

        return self._run(op)

    def link_document(
        self,
        document_id: UUID,
        entity: str,
        entity_id: UUID,
        relationship_type: str = "primary",
        actor_id: UUID | None = None,
    ) -> OperationResult[Any]:
        def op():
            self._require_permission(actor_id, _P.DOCUMENTS_UPDATE)
            return self.documents.link_document(document_id, entity, entity_id, relationship_type)

        return self._run(op, lambda c: [
            DocumentLinkChanged(
                metadata=self._metadata(actor_id),
                link_id=c.link.id,
                document_id=document_id,
                from_status=c.from_status,
                to_status=c.to_status,
            )
        ] if c.from_status != c.to_status else [])

    def unlink_document(self, link_id: UUID, actor_id: UUID | None = None) -> OperationResult[Any]:
        def op():
            self._require_permission(actor_id, _P.DOCUMENTS_UPDATE)
            return self.documents.unlink_document(link_id)

        return self._run(op, lambda c: [
            DocumentLinkChanged(
                metadata=self._metadata(actor_id),
                link_id=c.link.id,
                document_id=c.link.document_id,
                from_status=c.from_status,
                to_status=c.to_status,
            )
        ] if c.from_status != c.to_status else [])

    def check_validity(
        self,
        entity_id: UUID,
        entity_kind: EntityKind | str,
        as_of: datetime | None = None,
        actor_id: UUID | None = None,
    ) -> OperationResult[ValidityReport]:
        """Expiry report for one stored entity. Read-only."""

        def op() -> ValidityReport:
            self._require_permission(actor_id, _P.DOCUMENTS_READ)
            try:
                kind = EntityKind(entity_kind)
            except ValueError:
                raise NotFound("entity_kind", entity_kind) from None
            entity = self._store.require(VALIDITY_MODELS[kind], entity_id)
            return self.validity.check(entity, kind, as_of or self._clock.now())

        return self._run(op)

    # ------------------------------------------------------------------
    # Accounting
    # ------------------------------------------------------------------

    def post_escrow_transaction(
        self,
        account_id: UUID,
        transaction_type: str,
        amount: Decimal,
        description: str | None = None,
        actor_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> OperationResult[PostingResult]:
        """Apply a posting. A replayed idempotency key emits nothing."""

        def op() -> PostingResult:
            self._require_permission(actor_id, _P.ESCROW_UPDATE)
            return self.escrow.post_transaction(
                account_id,
                transaction_type,
                amount,
                description,
                idempotency_key=idempotency_key,
            )

        return self._run(op, lambda r: [
            EscrowTransactionPosted(
                metadata=self._metadata(actor_id),
                escrow_account_id=account_id,
                escrow_transaction_id=r.transaction.id,
                transaction_type=r.transaction.type,
                amount=Decimal(r.transaction.amount),
                new_balance=r.new_balance,
            )
        ] if r.is_new else [])

    def verify_escrow_balance(
        self, account_id: UUID, actor_id: UUID | None = None
    ) -> OperationResult[BalanceCheck]:
        def op() -> BalanceCheck:
            self._require_permission(actor_id, _P.ESCROW_READ)
            return self.escrow.verify_balance(account_id)

        return self._run(op)

    def draft_settlement(
        self,
        unit_id: UUID,
        period_start: date,
        period_end: date,
        total_gross: Decimal,
        fuel_policy: FuelPolicy | str = FuelPolicy.REPORT_ONLY,
        total_deductions: Decimal | None = None,
        total_fuel: Decimal | None = None,
        actor_id: UUID | None = None,
    ) -> OperationResult[Settlement]:
        def op() -> Settlement:
            self._require_permission(actor_id, _P.COSTS_CREATE)
            return self.settlements.draft_settlement(
                unit_id,
                period_start,
                period_end,
                total_gross,
                fuel_policy=fuel_policy,
                total_deductions=total_deductions,
                total_fuel=total_fuel,
            )

        return self._run(op, lambda s: [
            SettlementDrafted(
                metadata=self._metadata(actor_id),
                settlement_id=s.id,
                unit_id=s.unit_id,
                net_amount=s.net_amount,
                fuel_policy=s.fuel_policy,
            )
        ])

    def issue_settlement(
        self, settlement_id: UUID, actor_id: UUID | None = None
    ) -> OperationResult[Settlement]:
        def op() -> Settlement:
            self._require_permission(actor_id, _P.COSTS_APPROVE)
            return self.settlements.issue_settlement(settlement_id, issued_by=actor_id)

        return self._run(op, lambda s: [
            SettlementIssued(
                metadata=self._metadata(actor_id),
                settlement_id=s.id,
                unit_id=s.unit_id,
                net_amount=s.net_amount,
                issued_at=s.issued_at,
            )
        ])
