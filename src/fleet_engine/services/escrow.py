"""Escrow posting service.

The account balance is a materialized view of the transaction log:

- postings are append-only; nothing updates or deletes a transaction
- the balance moves only by an atomic ``balance = balance + :delta``
  issued in the same database transaction as the log append
- ``replay_balance`` recomputes the sum of the log from zero and must
  always equal the stored balance
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from fleet_engine.errors import AccountingError, InvalidTransition
from fleet_engine.models import EscrowAccount, EscrowTransaction, LeaseContract
from fleet_engine.runtime import Clock, IdFactory, SystemClock, default_id_factory
from fleet_engine.services.state_machine import (
    EscrowAccountStateMachine,
    EscrowAccountStatus,
    status_value,
)
from fleet_engine.store import EntityStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class EscrowTransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INTEREST = "interest"
    CHARGE = "charge"
    ADJUSTMENT = "adjustment"

    @property
    def sign(self) -> int:
        """+1 credits the account, -1 debits it, 0 means the caller picks."""
        if self in (EscrowTransactionType.DEPOSIT, EscrowTransactionType.INTEREST):
            return 1
        if self in (EscrowTransactionType.WITHDRAWAL, EscrowTransactionType.CHARGE):
            return -1
        return 0


def _transaction_type(value: EscrowTransactionType | str) -> EscrowTransactionType:
    try:
        return EscrowTransactionType(value)
    except ValueError as e:
        raise AccountingError(f"unknown transaction type {value!r}") from e


def signed_amount(transaction_type: EscrowTransactionType | str, amount: Decimal) -> Decimal:
    """Effect of a posting on the balance.

    Magnitudes for deposit, interest, withdrawal and charge must be
    positive. Adjustments carry their own sign and must be non-zero.
    """
    kind = _transaction_type(transaction_type)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise AccountingError(f"amount {amount!r} is not a number") from e
    if not value.is_finite():
        raise AccountingError(f"amount {amount!r} is not finite")
    if value != value.quantize(CENT):
        raise AccountingError(f"amount {value} has more than two decimal places")

    if kind.sign == 0:
        if value == 0:
            raise AccountingError("adjustment amount must be non-zero")
        return value
    if value <= 0:
        raise AccountingError(f"{kind.value} amount must be positive, got {value}")
    return value * kind.sign


@dataclass(frozen=True)
class PostingResult:
    """Result of an escrow posting.

    Check ``is_new``: False means an earlier posting with the same
    idempotency key was returned and the balance did not move.
    """

    transaction: EscrowTransaction
    account: EscrowAccount
    new_balance: Decimal
    is_new: bool


@dataclass(frozen=True)
class BalanceCheck:
    stored: Decimal
    replayed: Decimal
    transaction_count: int

    @property
    def drift(self) -> Decimal:
        return self.stored - self.replayed

    @property
    def ok(self) -> bool:
        return self.drift == 0


class EscrowService:
    """Opens escrow accounts and applies postings to them."""

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

    def open_account(self, contract_id: UUID, interest_policy: str | None = None) -> EscrowAccount:
        self.store.require(LeaseContract, contract_id)
        now = self.clock.now()
        account = self.store.add(
            EscrowAccount(
                id=self.new_id(),
                contract_id=contract_id,
                balance=Decimal("0.00"),
                interest_policy=interest_policy,
                accounting_status=EscrowAccountStatus.ACTIVE.value,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Opened escrow account %s for contract %s", account.id, contract_id)
        return account

    def set_status(self, account_id: UUID, to_status: str) -> EscrowAccount:
        account = self.store.require(EscrowAccount, account_id)
        from_status = account.accounting_status
        target = status_value(to_status)
        EscrowAccountStateMachine.validate_transition(from_status, target)
        if not self.store.compare_and_set(
            EscrowAccount,
            account_id,
            from_status,
            {"accounting_status": target, "updated_at": self.clock.now()},
            status_column="accounting_status",
        ):
            raise InvalidTransition("escrow_account", account.accounting_status, target)
        logger.info("Escrow account %s %s -> %s", account_id, from_status, target)
        return account

    def post_transaction(
        self,
        account_id: UUID,
        transaction_type: str,
        amount: Decimal,
        description: str | None = None,
        *,
        idempotency_key: str | None = None,
    ) -> PostingResult:
        """Append a posting and move the balance by its signed amount.

        Args:
            account_id: Escrow account to post to
            transaction_type: deposit, withdrawal, interest, charge or adjustment
            amount: Positive magnitude, or a signed non-zero value for adjustments
            description: Free text kept on the log entry
            idempotency_key: Optional key; a retry with the same key and the
                same type and amount returns the original posting

        Raises:
            NotFound: account does not exist
            AccountingError: account not active, unknown type, bad amount, or a reused
                idempotency key with different parameters
        """
        kind = _transaction_type(transaction_type)
        delta = signed_amount(kind, amount)
        account = self.store.require(EscrowAccount, account_id)

        if idempotency_key is not None:
            existing = self.store.find_one(
                EscrowTransaction,
                EscrowTransaction.escrow_account_id == account_id,
                EscrowTransaction.idempotency_key == idempotency_key,
            )
            if existing is not None:
                if existing.type != kind.value or Decimal(existing.amount) != delta:
                    raise AccountingError(
                        f"idempotency key {idempotency_key!r} was already used for a "
                        f"{existing.type} of {existing.amount}",
                        account_id,
                    )
                return PostingResult(
                    transaction=existing,
                    account=account,
                    new_balance=account.balance,
                    is_new=False,
                )

        if account.accounting_status != EscrowAccountStatus.ACTIVE:
            raise AccountingError(
                f"account is {account.accounting_status}; postings are not accepted", account_id
            )

        last = self.session.scalar(
            select(func.max(EscrowTransaction.sequence)).where(
                EscrowTransaction.escrow_account_id == account_id
            )
        )
        now = self.clock.now()
        transaction = self.store.add(
            EscrowTransaction(
                id=self.new_id(),
                escrow_account_id=account_id,
                sequence=(last or 0) + 1,
                type=kind.value,
                amount=delta,
                description=description,
                idempotency_key=idempotency_key,
                posted_at=now,
            )
        )

        self.session.execute(
            update(EscrowAccount)
            .where(EscrowAccount.id == account_id)
            .values(balance=EscrowAccount.balance + delta, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(account)

        logger.info(
            "Posted %s %s to escrow %s; balance %s", kind.value, delta, account_id, account.balance
        )
        return PostingResult(
            transaction=transaction,
            account=account,
            new_balance=account.balance,
            is_new=True,
        )

    def transactions(self, account_id: UUID) -> list[EscrowTransaction]:
        return self.store.find(
            EscrowTransaction,
            EscrowTransaction.escrow_account_id == account_id,
            order_by=EscrowTransaction.sequence,
        )

    def replay_balance(self, account_id: UUID) -> Decimal:
        """Sum of the ordered log, starting from zero."""
        self.store.require(EscrowAccount, account_id)
        balance = Decimal("0.00")
        for transaction in self.transactions(account_id):
            balance += Decimal(transaction.amount)
        return balance

    def verify_balance(self, account_id: UUID) -> BalanceCheck:
        account = self.store.require(EscrowAccount, account_id)
        self.session.refresh(account)
        replayed = self.replay_balance(account_id)
        check = BalanceCheck(
            stored=Decimal(account.balance),
            replayed=replayed,
            transaction_count=len(self.transactions(account_id)),
        )
        if not check.ok:
            logger.error(
                "Escrow %s balance drift: stored %s, replayed %s",
                account_id,
                check.stored,
                check.replayed,
            )
        return check
