"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Error body returned for every settlement failure."""

    detail: str
    code: str


# ============================================================================
# Payment schemas
# ============================================================================


class PaymentCreate(BaseModel):
    """Schema for starting a submission payment."""

    submission_id: UUID
    payment_method_id: UUID
    return_url: str = Field(min_length=1)
    cancel_url: str = Field(min_length=1)


class PaymentCreateResponse(BaseModel):
    transaction_id: UUID
    approval_url: str | None
    resumed: bool = False
    status: str
    amount_total: Decimal
    platform_fee: Decimal
    creator_payout_amount: Decimal
    currency: str


class PaymentExecute(BaseModel):
    """Provider redirect parameters after the payer approved."""

    payment_id: str = Field(min_length=1)
    payer_id: str = Field(min_length=1)


class TransactionResponse(BaseModel):
    """Schema for transaction response."""

    model_config = ConfigDict(from_attributes=True)

    transaction_id: UUID
    submission_id: UUID
    payment_method_id: UUID | None = None
    amount_total: Decimal
    currency: str
    platform_fee: Decimal
    creator_payout_amount: Decimal
    status: str
    payment_provider_transaction_id: str | None = None
    created_at: datetime
    updated_at: datetime


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    total: int
    skip: int
    take: int


# ============================================================================
# Balance schemas
# ============================================================================


class BalanceResponse(BaseModel):
    balance: Decimal
    pending_withdrawals: Decimal
    available: Decimal
    total_earnings: Decimal
    total_transactions: int
    currency: str


class EarningsResponse(BaseModel):
    period: Literal["day", "week", "month", "year"]
    earnings: Decimal
    transaction_count: int
    currency: str


# ============================================================================
# Withdrawal schemas
# ============================================================================


class WithdrawalCreate(BaseModel):
    """Schema for requesting a payout."""

    amount: Decimal = Field(gt=0, decimal_places=2)


class WithdrawalResponse(BaseModel):
    """Schema for withdrawal response."""

    model_config = ConfigDict(from_attributes=True)

    withdrawal_id: UUID
    user_id: UUID
    amount: Decimal
    currency: str
    status: str
    requested_at: datetime
    processed_at: datetime | None = None
    payout_batch_id: str | None = None
    error_message: str | None = None
    created_at: datetime


class WithdrawalCreateResponse(BaseModel):
    withdrawal_id: UUID
    batch_id: str
    status: str
    new_balance: Decimal


class WithdrawalListResponse(BaseModel):
    items: list[WithdrawalResponse]
    total: int
    skip: int
    take: int
