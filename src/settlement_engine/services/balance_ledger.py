"""Balance Ledger - curator balance accrual and payout debits.

The balance is a single scalar on the user row:
- credit: atomic increment when a payment is confirmed
- debit: atomic conditional decrement after a payout is accepted
- available: balance minus in-flight (pending/processing) withdrawals

The balance is derived state. It must equal the sum of succeeded creator
payouts minus completed withdrawals, which ``reconciliation_snapshot`` exposes
for offline checking; it is never recomputed on the hot path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from settlement_engine.errors import InvariantViolation, NotFound, ValidationError
from settlement_engine.models import Playlist, Submission, Transaction, User, Withdrawal
from settlement_engine.money import quantize
from settlement_engine.services.state_machine import (
    IN_FLIGHT_WITHDRAWAL_STATUSES,
    TransactionStatus,
    WithdrawalStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailableBalance:
    """Stored balance with the amount held by in-flight withdrawals."""

    balance: Decimal
    pending_withdrawals: Decimal

    @property
    def available(self) -> Decimal:
        """Balance minus in-flight withdrawals."""
        return self.balance - self.pending_withdrawals


@dataclass(frozen=True)
class ReconciliationSnapshot:
    """Inputs to the offline balance check for one curator."""

    balance: Decimal
    succeeded_payouts: Decimal
    completed_withdrawals: Decimal

    @property
    def expected_balance(self) -> Decimal:
        return self.succeeded_payouts - self.completed_withdrawals

    @property
    def drift(self) -> Decimal:
        """Non-zero when the stored balance disagrees with history."""
        return self.balance - self.expected_balance


class BalanceLedger:
    """Atomic balance mutations on the user row.

    Notes:
    - Callers own the database transaction; nothing here commits.
    - credit is not idempotent on its own. The caller guarantees one credit
      per transaction by crediting only after winning the conditional
      pending → succeeded status update.
    - debit never clamps. A decrement that would go negative raises
      InvariantViolation and changes nothing.
    """

    def __init__(self, db: Session):
        self.db = db

    def credit(self, user_id: UUID, amount: Decimal) -> Decimal:
        """Increment the user's balance.

        Args:
            user_id: Curator receiving the credit
            amount: Positive major-unit amount

        Returns:
            The new balance
        """
        amount = quantize(amount)
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        result = self.db.execute(
            update(User)
            .where(User.user_id == user_id)
            .values(balance=User.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound("User", user_id)

        new_balance = self.get_balance(user_id)
        logger.info("Credited %s to user %s (balance=%s)", amount, user_id, new_balance)
        return new_balance

    def debit(self, user_id: UUID, amount: Decimal) -> Decimal:
        """Decrement the user's balance only if it stays non-negative.

        Args:
            user_id: Curator being debited
            amount: Positive major-unit amount, already checked against available

        Returns:
            The new balance

        Raises:
            InvariantViolation: if the balance would go below zero
        """
        amount = quantize(amount)
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")

        result = self.db.execute(
            update(User)
            .where(User.user_id == user_id, User.balance >= amount)
            .values(balance=User.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = self.get_balance(user_id)  # raises NotFound for unknown users
            raise InvariantViolation(
                f"Debit of {amount} would make balance of user {user_id} negative (balance={current})"
            )

        new_balance = self.get_balance(user_id)
        logger.info("Debited %s from user %s (balance=%s)", amount, user_id, new_balance)
        return new_balance

    def get_balance(self, user_id: UUID) -> Decimal:
        """Stored balance for a user."""
        balance = self.db.execute(
            select(User.balance).where(User.user_id == user_id)
        ).scalar_one_or_none()
        if balance is None:
            raise NotFound("User", user_id)
        return quantize(balance)

    def get_available(self, user_id: UUID) -> AvailableBalance:
        """Balance, in-flight withdrawals, and available amount. Read-only."""
        balance = self.get_balance(user_id)
        pending = self.db.execute(
            select(func.coalesce(func.sum(Withdrawal.amount), 0)).where(
                Withdrawal.user_id == user_id,
                Withdrawal.status.in_(IN_FLIGHT_WITHDRAWAL_STATUSES),
            )
        ).scalar_one()
        return AvailableBalance(balance=balance, pending_withdrawals=quantize(pending))

    def lock_user(self, user_id: UUID) -> None:
        """Take a row lock on the user until the current transaction ends.

        Serializes withdrawal claims for one user on databases with row
        locks. SQLite ignores FOR UPDATE and serializes writers instead.
        """
        found = self.db.execute(
            select(User.user_id).where(User.user_id == user_id).with_for_update()
        ).scalar_one_or_none()
        if found is None:
            raise NotFound("User", user_id)

    def reconciliation_snapshot(self, user_id: UUID) -> ReconciliationSnapshot:
        """Stored balance next to the history it should equal."""
        balance = self.get_balance(user_id)
        succeeded = self.db.execute(
            select(func.coalesce(func.sum(Transaction.creator_payout_amount), 0))
            .join(Submission, Submission.submission_id == Transaction.submission_id)
            .join(Playlist, Playlist.playlist_id == Submission.playlist_id)
            .where(
                Playlist.creator_id == user_id,
                Transaction.status == TransactionStatus.SUCCEEDED.value,
            )
        ).scalar_one()
        completed = self.db.execute(
            select(func.coalesce(func.sum(Withdrawal.amount), 0)).where(
                Withdrawal.user_id == user_id,
                Withdrawal.status == WithdrawalStatus.COMPLETED.value,
            )
        ).scalar_one()
        return ReconciliationSnapshot(
            balance=balance,
            succeeded_payouts=quantize(succeeded),
            completed_withdrawals=quantize(completed),
        )
