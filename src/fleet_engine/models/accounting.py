"""Escrow accounts, their transaction log, and driver settlements."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_engine.models.base import Base, TimestampMixin, UTCDateTime, utcnow


class EscrowAccount(Base, TimestampMixin):
    """Escrow held against a lease contract.

    ``balance`` is a materialized view of the transaction log. Only
    ``EscrowService.post_transaction`` writes it.
    """

    __tablename__ = "escrow_account"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    contract_id: Mapped[UUID] = mapped_column(ForeignKey("lease_contract.id"), nullable=False)
    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    interest_policy: Mapped[str | None] = mapped_column(String)
    accounting_status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "accounting_status IN ('active', 'frozen', 'closed')",
            name="escrow_account_status_check",
        ),
    )


class EscrowTransaction(Base):
    """Append-only posting. ``amount`` is the signed effect on the balance."""

    __tablename__ = "escrow_transaction"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    escrow_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("escrow_account.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    idempotency_key: Mapped[str | None] = mapped_column(String)
    posted_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("escrow_account_id", "sequence", name="escrow_transaction_sequence_unique"),
        UniqueConstraint(
            "escrow_account_id", "idempotency_key", name="escrow_transaction_idempotency_unique"
        ),
        CheckConstraint(
            "type IN ('deposit', 'withdrawal', 'interest', 'charge', 'adjustment')",
            name="escrow_transaction_type_check",
        ),
        CheckConstraint("amount <> 0", name="escrow_transaction_nonzero"),
    )


class Settlement(Base, TimestampMixin):
    """Pay settlement for a unit over a period. Issued at most once."""

    __tablename__ = "settlement"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    unit_id: Mapped[UUID] = mapped_column(ForeignKey("vehicle.id"), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_fuel: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    fuel_policy: Mapped[str] = mapped_column(String, nullable=False, default="report_only")
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    issued_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    issued_by: Mapped[UUID | None] = mapped_column(ForeignKey("app_user.id"))
    notes: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("status IN ('draft', 'issued')", name="settlement_status_check"),
        CheckConstraint(
            "fuel_policy IN ('report_only', 'net_fuel')", name="settlement_fuel_policy_check"
        ),
        CheckConstraint("period_end >= period_start", name="settlement_period_check"),
    )
