"""Escrow posting and settlement issuance endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from fleet_engine.api.dependencies import Core, DbSession, UserId
from fleet_engine.api.schemas import (
    BalanceReplayResponse,
    ErrorResponse,
    EscrowPostingResponse,
    EscrowTransactionCreate,
    SettlementResponse,
)

router = APIRouter(tags=["accounting"])


@router.post(
    "/escrow-accounts/{account_id}/transactions",
    response_model=EscrowPostingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
def post_escrow_transaction(
    db: DbSession,
    core: Core,
    actor_id: UserId,
    account_id: Annotated[UUID, Path()],
    payload: EscrowTransactionCreate,
) -> EscrowPostingResponse:
    """Apply a posting. Retrying with the same idempotency key returns the original."""
    posting = core.post_escrow_transaction(
        account_id,
        payload.type,
        payload.amount,
        payload.description,
        actor_id=actor_id,
        idempotency_key=payload.idempotency_key,
    ).unwrap()
    db.commit()
    return EscrowPostingResponse(
        account_id=account_id,
        transaction_id=posting.transaction.id,
        sequence=posting.transaction.sequence,
        type=posting.transaction.type,
        amount=posting.transaction.amount,
        new_balance=posting.new_balance,
        is_new=posting.is_new,
    )


@router.get(
    "/escrow-accounts/{account_id}/replay",
    response_model=BalanceReplayResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def replay_escrow_balance(
    core: Core,
    actor_id: UserId,
    account_id: Annotated[UUID, Path()],
) -> BalanceReplayResponse:
    """Recompute the balance from the transaction log and compare with the stored one."""
    check = core.verify_escrow_balance(account_id, actor_id=actor_id).unwrap()
    return BalanceReplayResponse(
        account_id=account_id,
        stored_balance=check.stored,
        replayed_balance=check.replayed,
        drift=check.drift,
        transaction_count=check.transaction_count,
        ok=check.ok,
    )


@router.post(
    "/settlements/{settlement_id}/issue",
    response_model=SettlementResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
def issue_settlement(
    db: DbSession,
    core: Core,
    actor_id: UserId,
    settlement_id: Annotated[UUID, Path()],
) -> SettlementResponse:
    """Issue a draft settlement. A second call is rejected with 409."""
    settlement = core.issue_settlement(settlement_id, actor_id=actor_id).unwrap()
    db.commit()
    return SettlementResponse.model_validate(settlement)
