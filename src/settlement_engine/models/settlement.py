"""Settlement models.

- Transaction: a payment for a submission, pending -> succeeded | failed.
  Failed attempts stay on record; a submission has at most one live one.
- Withdrawal: one curator payout, pending -> processing -> completed | failed.
- CreditReconciliation: residue left when a confirmed payment could not be
  credited to the curator balance; corrected out of band.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import CHAR, CheckConstraint, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_engine.models.base import Base, JSONType, TimestampMixin, utcnow

if TYPE_CHECKING:
    from settlement_engine.models.marketplace import PaymentMethod, Submission, User


class Transaction(TimestampMixin, Base):
    """Payment attempt for a submission.

    amount_total = platform_fee + creator_payout_amount is enforced by the
    database as well as at creation.
    """

    __tablename__ = "transactions"

    transaction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    submission_id: Mapped[UUID] = mapped_column(
        ForeignKey("submissions.submission_id"), nullable=False
    )
    payment_method_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payment_methods.payment_method_id"), nullable=True
    )
    amount_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(CHAR(3), nullable=False, default="USD")
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    creator_payout_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_provider_transaction_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True, unique=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed')", name="transactions_status_ck"
        ),
        CheckConstraint(
            "amount_total = platform_fee + creator_payout_amount",
            name="transactions_amount_split_ck",
        ),
        CheckConstraint(
            "platform_fee >= 0 AND creator_payout_amount >= 0", name="transactions_amounts_ck"
        ),
        Index("transactions_by_status", "status", "created_at"),
        # Failed attempts do not block a new one for the same submission.
        Index(
            "transactions_live_submission_uq",
            "submission_id",
            unique=True,
            postgresql_where=text("status <> 'failed'"),
            sqlite_where=text("status <> 'failed'"),
        ),
    )

    submission: Mapped[Submission] = relationship(back_populates="transactions")
    payment_method: Mapped[PaymentMethod | None] = relationship()


class Withdrawal(TimestampMixin, Base):
    """Curator payout request against their balance."""

    __tablename__ = "withdrawals"

    withdrawal_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(CHAR(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    requested_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payout_batch_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payout_response: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="withdrawals_status_ck",
        ),
        CheckConstraint("amount > 0", name="withdrawals_amount_ck"),
        Index("withdrawals_by_user", "user_id", "status"),
    )

    user: Mapped[User] = relationship(back_populates="withdrawals")


class CreditReconciliation(Base):
    """Confirmed payment whose curator credit failed to apply."""

    __tablename__ = "credit_reconciliations"

    reconciliation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    transaction_id: Mapped[UUID] = mapped_column(
        ForeignKey("transactions.transaction_id"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('open', 'resolved')", name="credit_reconciliations_status_ck"),
        Index("credit_reconciliations_open", "status", "created_at"),
    )
