"""Lease contracts and the dated obligations hanging off them."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fleet_engine.models.base import Base, TimestampMixin, UTCDateTime, utcnow


class LeaseContract(Base, TimestampMixin):
    """Lease of a vehicle between a lessor and a lessee."""

    __tablename__ = "lease_contract"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    lessor_name: Mapped[str] = mapped_column(String, nullable=False)
    lessee_name: Mapped[str] = mapped_column(String, nullable=False)
    vehicle_id: Mapped[UUID] = mapped_column(ForeignKey("vehicle.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    terms_summary: Mapped[str | None] = mapped_column(Text)
    insurance_requirements: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'expired', 'terminated', 'pending', 'suspended')",
            name="lease_contract_status_check",
        ),
    )


class PaymentSchedule(Base, TimestampMixin):
    """Recurring lease payment falling on ``due_day`` of the month."""

    __tablename__ = "payment_schedule"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    contract_id: Mapped[UUID] = mapped_column(
        ForeignKey("lease_contract.id", ondelete="CASCADE"), nullable=False
    )
    frequency: Mapped[str] = mapped_column(String, nullable=False, default="monthly")
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    due_day: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint("due_day BETWEEN 1 AND 31", name="payment_schedule_due_day_check"),
        CheckConstraint(
            "frequency IN ('weekly', 'biweekly', 'monthly', 'quarterly')",
            name="payment_schedule_frequency_check",
        ),
        CheckConstraint(
            "status IN ('active', 'inactive', 'completed', 'suspended')",
            name="payment_schedule_status_check",
        ),
    )


class ComplianceEvent(Base, TimestampMixin):
    """Dated compliance obligation. Overdue is derived, not stored, unless transitioned."""

    __tablename__ = "compliance_event"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    contract_id: Mapped[UUID | None] = mapped_column(ForeignKey("lease_contract.id"))
    vehicle_id: Mapped[UUID | None] = mapped_column(ForeignKey("vehicle.id"))
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    created_by: Mapped[UUID | None] = mapped_column(ForeignKey("app_user.id"))
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    __table_args__ = (
        CheckConstraint(
            "event_type IN ('insurance_renewal', 'inspection_due', 'registration_renewal', "
            "'dot_inspection', 'permits_expiration', 'compliance_check', 'audit_required')",
            name="compliance_event_type_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'completed', 'overdue', 'cancelled')",
            name="compliance_event_status_check",
        ),
    )
