"""Driver settlements: drafting with an explicit fuel policy, and one-time issuance."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_engine.errors import AccountingError, AlreadyIssued, parse_choice
from fleet_engine.models import Advance, Deduction, FuelRecord, Settlement, Trip, Vehicle
from fleet_engine.runtime import Clock, IdFactory, SystemClock, default_id_factory
from fleet_engine.services.state_machine import SettlementStatus
from fleet_engine.store import EntityStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class FuelPolicy(str, Enum):
    """Whether fuel spend reduces net pay.

    REPORT_ONLY keeps ``total_fuel`` informational. NET_FUEL subtracts it.
    """

    REPORT_ONLY = "report_only"
    NET_FUEL = "net_fuel"

    def net(self, gross: Decimal, deductions: Decimal, fuel: Decimal) -> Decimal:
        net = gross - deductions
        if self is FuelPolicy.NET_FUEL:
            net -= fuel
        return net.quantize(CENT)


def _money(value: Decimal | int | str, name: str) -> Decimal:
    amount = Decimal(value)
    if amount < 0:
        raise AccountingError(f"{name} must not be negative, got {amount}")
    return amount.quantize(CENT)


class SettlementService:
    """Drafts settlements for a unit and issues them exactly once."""

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

    def _sum(self, query) -> Decimal:
        return sum((Decimal(v) for v in self.session.scalars(query)), Decimal("0.00"))

    def period_deductions(self, unit_id: UUID, period_start: date, period_end: date) -> Decimal:
        """Deductions plus advances recorded against the unit's trips in the period."""
        trips = select(Trip.id).where(Trip.vehicle_id == unit_id)
        deductions = self._sum(
            select(Deduction.amount).where(
                Deduction.trip_id.in_(trips),
                Deduction.incurred_on >= period_start,
                Deduction.incurred_on <= period_end,
            )
        )
        advances = self._sum(
            select(Advance.amount).where(
                Advance.trip_id.in_(trips),
                Advance.advanced_on >= period_start,
                Advance.advanced_on <= period_end,
            )
        )
        return deductions + advances

    def period_fuel(self, unit_id: UUID, period_start: date, period_end: date) -> Decimal:
        return self._sum(
            select(FuelRecord.amount).where(
                FuelRecord.vehicle_id == unit_id,
                FuelRecord.purchased_on >= period_start,
                FuelRecord.purchased_on <= period_end,
            )
        )

    def draft_settlement(
        self,
        unit_id: UUID,
        period_start: date,
        period_end: date,
        total_gross: Decimal,
        fuel_policy: FuelPolicy | str = FuelPolicy.REPORT_ONLY,
        total_deductions: Decimal | None = None,
        total_fuel: Decimal | None = None,
        notes: str | None = None,
    ) -> Settlement:
        """Create a draft settlement.

        Totals left as None are aggregated from the unit's recorded
        deductions, advances and fuel purchases within the period.
        """
        self.store.require(Vehicle, unit_id)
        if period_end < period_start:
            raise ValueError("period_end must not precede period_start")
        policy = parse_choice(FuelPolicy, fuel_policy, "fuel_policy")

        gross = _money(total_gross, "total_gross")
        if total_deductions is None:
            total_deductions = self.period_deductions(unit_id, period_start, period_end)
        if total_fuel is None:
            total_fuel = self.period_fuel(unit_id, period_start, period_end)
        deductions = _money(total_deductions, "total_deductions")
        fuel = _money(total_fuel, "total_fuel")

        settlement = self.store.add(
            Settlement(
                id=self.new_id(),
                unit_id=unit_id,
                period_start=period_start,
                period_end=period_end,
                total_gross=gross,
                total_deductions=deductions,
                total_fuel=fuel,
                net_amount=policy.net(gross, deductions, fuel),
                fuel_policy=policy.value,
                status=SettlementStatus.DRAFT.value,
                notes=notes,
                created_at=self.clock.now(),
            )
        )
        logger.info(
            "Drafted settlement %s for unit %s: net %s (%s)",
            settlement.id,
            unit_id,
            settlement.net_amount,
            policy.value,
        )
        return settlement

    def issue_settlement(self, settlement_id: UUID, issued_by: UUID | None = None) -> Settlement:
        """Issue a draft settlement.

        Not idempotent: issuance has external financial effect, so a second
        call fails instead of returning the issued row.

        Raises:
            NotFound: settlement does not exist
            AlreadyIssued: already issued, including by a concurrent caller
        """
        settlement = self.store.require(Settlement, settlement_id)
        if settlement.issued_at is not None or settlement.status == SettlementStatus.ISSUED:
            raise AlreadyIssued(settlement.id, settlement.issued_at)

        issued_at = self.clock.now()
        won = self.store.compare_and_set(
            Settlement,
            settlement_id,
            SettlementStatus.DRAFT.value,
            {"status": SettlementStatus.ISSUED.value, "issued_at": issued_at, "issued_by": issued_by},
        )
        if not won:
            logger.warning("Settlement %s was issued concurrently", settlement_id)
            raise AlreadyIssued(settlement.id, settlement.issued_at)

        logger.info("Issued settlement %s, net %s", settlement_id, settlement.net_amount)
        return settlement
