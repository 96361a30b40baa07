"""Settlement API endpoints."""

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Query, status

from settlement_engine.api.dependencies import CurrentUserId, Settlement
from settlement_engine.api.schemas import (
    BalanceResponse,
    EarningsResponse,
    ErrorResponse,
    PaymentCreate,
    PaymentCreateResponse,
    PaymentExecute,
    TransactionListResponse,
    TransactionResponse,
    WithdrawalCreate,
    WithdrawalCreateResponse,
    WithdrawalListResponse,
    WithdrawalResponse,
)
from settlement_engine.services.transaction_manager import TransactionPage

router = APIRouter(prefix="/settlement", tags=["settlement"])

Skip = Annotated[int, Query(ge=0)]
Take = Annotated[int, Query(ge=1, le=100)]
StatusFilter = Annotated[Literal["pending", "succeeded", "failed"] | None, Query(alias="status")]


# ============================================================================
# Payments
# ============================================================================


@router.post(
    "/payments",
    response_model=PaymentCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def create_payment(
    settlement: Settlement,
    user_id: CurrentUserId,
    payload: PaymentCreate,
) -> PaymentCreateResponse:
    """Create a provider payment for a submission and return the approval URL."""
    result = settlement.process_payment(
        submission_id=payload.submission_id,
        payment_method_id=payload.payment_method_id,
        return_url=payload.return_url,
        cancel_url=payload.cancel_url,
        actor_id=user_id,
    )
    transaction = result.transaction
    return PaymentCreateResponse(
        transaction_id=transaction.transaction_id,
        approval_url=result.approval_url,
        status=transaction.status,
        amount_total=result.fee_split.total_amount,
        platform_fee=result.fee_split.platform_fee_amount,
        creator_payout_amount=result.fee_split.creator_payout_amount,
        currency=transaction.currency,
        resumed=result.resumed,
    )


@router.post(
    "/payments/execute",
    response_model=TransactionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def execute_payment(
    settlement: Settlement,
    user_id: CurrentUserId,
    payload: PaymentExecute,
) -> TransactionResponse:
    """Execute an approved payment and settle the transaction."""
    result = settlement.complete_payment(payload.payment_id, payload.payer_id, actor_id=user_id)
    return TransactionResponse.model_validate(result.transaction)


@router.get(
    "/payments/submission/{submission_id}",
    response_model=TransactionResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_submission_payment(
    settlement: Settlement,
    user_id: CurrentUserId,
    submission_id: UUID,
) -> TransactionResponse:
    """Payment of a submission, for its artist or curator."""
    transaction = settlement.get_submission_payment(submission_id, viewer_id=user_id)
    return TransactionResponse.model_validate(transaction)


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    settlement: Settlement,
    user_id: CurrentUserId,
    skip: Skip = 0,
    take: Take = 10,
    status_filter: StatusFilter = None,
) -> TransactionListResponse:
    """Transactions on the current curator's playlists, newest first."""
    return _transaction_list(
        settlement.list_transactions(user_id, skip=skip, take=take, status=status_filter)
    )


@router.get("/transactions/artist", response_model=TransactionListResponse)
def list_artist_transactions(
    settlement: Settlement,
    user_id: CurrentUserId,
    skip: Skip = 0,
    take: Take = 10,
    status_filter: StatusFilter = None,
) -> TransactionListResponse:
    """Payments the current artist made, newest first."""
    return _transaction_list(
        settlement.list_artist_transactions(user_id, skip=skip, take=take, status=status_filter)
    )


def _transaction_list(page: TransactionPage) -> TransactionListResponse:
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in page.items],
        total=page.total,
        skip=page.skip,
        take=page.take,
    )


# ============================================================================
# Balance
# ============================================================================


@router.get("/balance", response_model=BalanceResponse)
def get_balance(settlement: Settlement, user_id: CurrentUserId) -> BalanceResponse:
    summary = settlement.get_balance(user_id)
    return BalanceResponse(
        balance=summary.balance,
        pending_withdrawals=summary.pending_withdrawals,
        available=summary.available,
        total_earnings=summary.total_earnings,
        total_transactions=summary.total_transactions,
        currency=summary.currency,
    )


@router.get(
    "/earnings",
    response_model=EarningsResponse,
    responses={400: {"model": ErrorResponse}},
)
def get_earnings(
    settlement: Settlement,
    user_id: CurrentUserId,
    period: str = "month",
) -> EarningsResponse:
    """Earnings over the trailing day, week, month or year."""
    stats = settlement.get_earnings_stats(user_id, period)
    return EarningsResponse(
        period=stats.period,
        earnings=stats.earnings,
        transaction_count=stats.transaction_count,
        currency=stats.currency,
    )


# ============================================================================
# Withdrawals
# ============================================================================


@router.post(
    "/withdrawals",
    response_model=WithdrawalCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def create_withdrawal(
    settlement: Settlement,
    user_id: CurrentUserId,
    payload: WithdrawalCreate,
) -> WithdrawalCreateResponse:
    """Pay out part of the current curator's balance."""
    result = settlement.withdraw(user_id, payload.amount)
    return WithdrawalCreateResponse(
        withdrawal_id=result.withdrawal.withdrawal_id,
        batch_id=result.payout_batch_id,
        status=result.withdrawal.status,
        new_balance=result.new_balance,
    )


@router.get("/withdrawals", response_model=WithdrawalListResponse)
def list_withdrawals(
    settlement: Settlement,
    user_id: CurrentUserId,
    skip: Skip = 0,
    take: Take = 10,
) -> WithdrawalListResponse:
    page = settlement.list_withdrawals(user_id, skip=skip, take=take)
    return WithdrawalListResponse(
        items=[WithdrawalResponse.model_validate(w) for w in page.items],
        total=page.total,
        skip=page.skip,
        take=page.take,
    )
