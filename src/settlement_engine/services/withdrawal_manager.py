"""Withdrawal Manager - curator balance payouts.

Orchestrates a payout through:
1. Claim: pending withdrawal row created only if amount <= available
2. Provider payout call (no balance change yet)
3. Accepted: processing -> debit -> completed
   Rejected: failed, balance untouched
   Unidentifiable answer: stays pending with its hold, for an operator

The claim is a single conditional INSERT ... SELECT under a row lock on the
user, so two concurrent requests cannot both pass the available check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, String, Uuid, func, insert, literal, select, update
from sqlalchemy.orm import Session

from settlement_engine.config import SettlementConfig
from settlement_engine.errors import (
    InsufficientBalance,
    InvariantViolation,
    NotFound,
    PayoutOutcomeUnknown,
    ProviderError,
    WithdrawalFailed,
)
from settlement_engine.models import User, Withdrawal
from settlement_engine.models.base import utcnow
from settlement_engine.money import to_minor_units, validate_positive_amount
from settlement_engine.providers.base import PaymentGateway
from settlement_engine.services.balance_ledger import BalanceLedger
from settlement_engine.services.collaborators import PayoutAccountResolver
from settlement_engine.services.state_machine import (
    IN_FLIGHT_WITHDRAWAL_STATUSES,
    WithdrawalStateMachine,
    WithdrawalStatus,
)
from settlement_engine.services.transaction_manager import check_page

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WithdrawalResult:
    """Result of a completed withdrawal."""

    withdrawal: Withdrawal
    payout_batch_id: str
    new_balance: Decimal


@dataclass(frozen=True)
class WithdrawalPage:
    items: list[Withdrawal]
    total: int
    skip: int
    take: int


class WithdrawalManager:
    """Curator payout orchestration.

    Ordering is the core correctness property: the provider payout call
    returns (success or failure) strictly before the balance is touched.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        ledger: BalanceLedger,
        payout_accounts: PayoutAccountResolver,
        config: SettlementConfig | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.ledger = ledger
        self.payout_accounts = payout_accounts
        self.config = config or SettlementConfig()

    def withdraw(
        self,
        user_id: UUID,
        amount: Decimal | str | int,
        on_claimed: Callable[[UUID], None] | None = None,
    ) -> WithdrawalResult:
        """Pay out part of a curator's balance.

        Args:
            user_id: Curator requesting the payout
            amount: Positive major-unit amount
            on_claimed: Called with the withdrawal id once the hold is committed,
                before the provider is called

        Returns:
            WithdrawalResult with the completed withdrawal and batch id

        Raises:
            InsufficientBalance: amount exceeds available; no row is created
            PayoutAccountMissing: no linked payout account
            WithdrawalFailed: provider rejected the payout; row marked failed
            PayoutOutcomeUnknown: provider answer unusable; row stays pending
        """
        amount = validate_positive_amount(amount)

        available = self.ledger.get_available(user_id)
        if amount > available.available:
            raise InsufficientBalance(amount, available.available)

        recipient = self.payout_accounts.get_payout_address(user_id)

        withdrawal_id = self._claim(user_id, amount)
        logger.info("Withdrawal %s claimed %s for user %s", withdrawal_id, amount, user_id)
        if on_claimed is not None:
            on_claimed(withdrawal_id)

        note = self.config.withdrawal_note.format(amount=amount, currency=self.config.currency)
        try:
            payout = self.gateway.create_payout(
                recipient,
                to_minor_units(amount),
                self.config.currency,
                note,
            )
        except PayoutOutcomeUnknown as e:
            self._hold_for_review(withdrawal_id, e)
            raise
        except ProviderError as e:
            self._mark_failed(withdrawal_id, e.message)
            raise WithdrawalFailed(withdrawal_id, e.message) from e

        self._transition(
            withdrawal_id,
            WithdrawalStatus.PENDING.value,
            WithdrawalStatus.PROCESSING.value,
            payout_batch_id=payout.batch_id,
            payout_response=payout.raw,
        )
        self.db.commit()

        try:
            new_balance = self.ledger.debit(user_id, amount)
        except InvariantViolation:
            # The payout is out; the withdrawal stays processing and keeps holding the amount.
            self.db.rollback()
            logger.error(
                "Debit failed after accepted payout: withdrawal=%s batch=%s user=%s amount=%s",
                withdrawal_id,
                payout.batch_id,
                user_id,
                amount,
            )
            raise

        self._transition(
            withdrawal_id,
            WithdrawalStatus.PROCESSING.value,
            WithdrawalStatus.COMPLETED.value,
            processed_at=utcnow(),
        )
        self.db.commit()

        withdrawal = self.get_withdrawal(withdrawal_id)
        logger.info(
            "Withdrawal %s completed (batch=%s, balance=%s)", withdrawal_id, payout.batch_id, new_balance
        )
        return WithdrawalResult(withdrawal=withdrawal, payout_batch_id=payout.batch_id, new_balance=new_balance)

    def list(self, user_id: UUID, skip: int = 0, take: int = 10) -> WithdrawalPage:
        """Withdrawals for a user, newest first."""
        return page_withdrawals(self.db, user_id, skip, take)

    def get_withdrawal(self, withdrawal_id: UUID) -> Withdrawal:
        withdrawal = self.db.execute(
            select(Withdrawal)
            .where(Withdrawal.withdrawal_id == withdrawal_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if withdrawal is None:
            raise NotFound("Withdrawal", withdrawal_id)
        return withdrawal

    def _claim(self, user_id: UUID, amount: Decimal) -> UUID:
        """Create the pending row only if the amount still fits the available balance.

        Commits on success so the hold is visible to every other request
        before the provider is called.
        """
        self.ledger.lock_user(user_id)

        in_flight = (
            select(func.coalesce(func.sum(Withdrawal.amount), 0))
            .where(
                Withdrawal.user_id == user_id,
                Withdrawal.status.in_(IN_FLIGHT_WITHDRAWAL_STATUSES),
            )
            .correlate(None)
            .scalar_subquery()
        )
        available = (
            select(User.balance - in_flight)
            .where(User.user_id == user_id)
            .correlate(None)
            .scalar_subquery()
        )

        withdrawal_id = uuid4()
        now = utcnow()
        claim = insert(Withdrawal).from_select(
            [
                "withdrawal_id",
                "user_id",
                "amount",
                "currency",
                "status",
                "requested_at",
                "created_at",
                "updated_at",
            ],
            select(
                literal(withdrawal_id, Uuid()),
                literal(user_id, Uuid()),
                literal(amount, Numeric(12, 2)),
                literal(self.config.currency, String(3)),
                literal(WithdrawalStatus.PENDING.value, String(16)),
                literal(now, DateTime(timezone=True)),
                literal(now, DateTime(timezone=True)),
                literal(now, DateTime(timezone=True)),
            ).where(available >= amount),
        )
        result = self.db.execute(claim)

        if result.rowcount != 1:
            self.db.rollback()
            raise InsufficientBalance(amount, self.ledger.get_available(user_id).available)

        self.db.commit()
        return withdrawal_id

    def _mark_failed(self, withdrawal_id: UUID, error_message: str) -> None:
        self._transition(
            withdrawal_id,
            WithdrawalStatus.PENDING.value,
            WithdrawalStatus.FAILED.value,
            error_message=error_message,
            processed_at=utcnow(),
        )
        self.db.commit()
        logger.warning("Withdrawal %s failed: %s", withdrawal_id, error_message)

    def _hold_for_review(self, withdrawal_id: UUID, error: PayoutOutcomeUnknown) -> None:
        """Keep the row pending, and its hold, with what the provider sent back."""
        self.db.execute(
            update(Withdrawal)
            .where(
                Withdrawal.withdrawal_id == withdrawal_id,
                Withdrawal.status == WithdrawalStatus.PENDING.value,
            )
            .values(error_message=error.message, payout_response=error.payload, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.error(
            "Payout outcome unknown for withdrawal %s; left pending for operator review: %s",
            withdrawal_id,
            error.message,
        )

    def _transition(self, withdrawal_id: UUID, from_status: str, to_status: str, **values: Any) -> None:
        """Conditional status update; the row must still be in ``from_status``."""
        WithdrawalStateMachine.validate_transition(from_status, to_status)
        result = self.db.execute(
            update(Withdrawal)
            .where(Withdrawal.withdrawal_id == withdrawal_id, Withdrawal.status == from_status)
            .values(status=to_status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvariantViolation(
                f"Withdrawal {withdrawal_id} was not in status '{from_status}' for transition to '{to_status}'"
            )


def page_withdrawals(db: Session, user_id: UUID, skip: int = 0, take: int = 10) -> WithdrawalPage:
    """Withdrawals for a user, newest first. Read-only."""
    check_page(skip, take)
    total = db.scalar(
        select(func.count()).select_from(Withdrawal).where(Withdrawal.user_id == user_id)
    ) or 0
    items = db.execute(
        select(Withdrawal)
        .where(Withdrawal.user_id == user_id)
        .order_by(Withdrawal.created_at.desc(), Withdrawal.withdrawal_id)
        .offset(skip)
        .limit(take)
    ).scalars().all()
    return WithdrawalPage(items=list(items), total=total, skip=skip, take=take)
