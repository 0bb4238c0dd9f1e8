"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fleet_engine.services.escrow import EscrowTransactionType


# ============================================================================
# Authorization schemas
# ============================================================================


class AuthorizeResponse(BaseModel):
    """Result of a permission check for the calling user."""

    user_id: UUID
    permission: str
    granted: bool


class GrantResponse(BaseModel):
    """Result of an idempotent grant or revoke."""

    changed: bool
    row_id: UUID | None = None


# ============================================================================
# Trip schemas
# ============================================================================


class TripTransitionRequest(BaseModel):
    target_status: str


class TripResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    vehicle_id: UUID
    driver_user_id: UUID
    status: str
    planned_start_at: datetime
    actual_start_at: datetime | None = None
    end_at: datetime | None = None
    origin_city: str | None = None
    origin_state: str | None = None
    dest_city: str | None = None
    dest_state: str | None = None
    distance_miles: float | None = None


# ============================================================================
# Accounting schemas
# ============================================================================


class EscrowTransactionCreate(BaseModel):
    """Posting request. Adjustments are signed; every other type is a positive magnitude."""

    type: EscrowTransactionType
    amount: Decimal
    description: str | None = None
    idempotency_key: str | None = Field(default=None, max_length=200)


class EscrowPostingResponse(BaseModel):
    account_id: UUID
    transaction_id: UUID
    sequence: int
    type: str
    amount: Decimal
    new_balance: Decimal
    is_new: bool


class BalanceReplayResponse(BaseModel):
    account_id: UUID
    stored_balance: Decimal
    replayed_balance: Decimal
    drift: Decimal
    transaction_count: int
    ok: bool


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    unit_id: UUID
    period_start: date
    period_end: date
    total_gross: Decimal
    total_deductions: Decimal
    total_fuel: Decimal
    net_amount: Decimal
    fuel_policy: str
    status: str
    issued_at: datetime | None = None
    issued_by: UUID | None = None


# ============================================================================
# Document and validity schemas
# ============================================================================


class DocumentVersionCreate(BaseModel):
    ocr_text: str | None = None
    ocr_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    file_uri: str | None = None


class DocumentVersionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    version: int
    ocr_text: str | None = None
    ocr_confidence: float | None = None
    file_uri: str | None = None
    created_at: datetime
    created_by: UUID


class ValidityResponse(BaseModel):
    entity_kind: str
    entity_id: UUID
    is_expired: bool
    is_expiring_soon: bool
    days_until: int
    expires_on: date | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
