"""Transaction Manager - submission payment capture.

Drives a submission payment through:
1. initiate: fee split, provider payment creation, pending row; an
   unfinished checkout is resumed, a failed one may be started over
2. confirm: provider execution, terminal status, curator credit

The terminal status is written with a conditional update
(``WHERE status = 'pending'``) so a payment is credited at most once even
when confirm is called twice or concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from settlement_engine.config import SettlementConfig
from settlement_engine.errors import (
    AlreadyProcessed,
    DuplicateTransaction,
    NotFound,
    PaymentMethodMismatch,
    ProviderError,
    SettlementError,
    ValidationError,
)
from settlement_engine.models import (
    CreditReconciliation,
    PaymentMethod,
    Playlist,
    Submission,
    Transaction,
)
from settlement_engine.models.base import utcnow
from settlement_engine.money import FeeSplit, quantize, split_submission_fee, to_minor_units
from settlement_engine.providers.base import PaymentGateway, approval_link
from settlement_engine.services.balance_ledger import BalanceLedger
from settlement_engine.services.collaborators import PayoutAccountResolver, SubmissionLookup
from settlement_engine.services.state_machine import TransactionStateMachine, TransactionStatus

logger = logging.getLogger(__name__)

TRANSACTION_STATUSES = frozenset(s.value for s in TransactionStatus)

EARNINGS_PERIODS: dict[str, timedelta] = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}


@dataclass(frozen=True)
class InitiateResult:
    """Result of initiating a submission payment."""

    transaction: Transaction
    approval_url: str | None
    fee_split: FeeSplit
    resumed: bool = False

    @property
    def is_free_submission(self) -> bool:
        return self.fee_split.total == 0


@dataclass(frozen=True)
class ConfirmResult:
    """Result of confirming a payment with the provider.

    IMPORTANT: ``credited`` is False both for rejected payments and for the
    reconciliation path. Check ``reconciliation_id`` to tell them apart.
    """

    transaction: Transaction
    provider_state: str
    credited: bool
    curator_id: UUID
    credited_amount: Decimal
    new_balance: Decimal | None = None
    reconciliation_id: UUID | None = None


@dataclass(frozen=True)
class EarningsStats:
    """Curator earnings over a trailing window."""

    period: str
    earnings: Decimal
    transaction_count: int
    currency: str


@dataclass(frozen=True)
class TransactionPage:
    items: list[Transaction]
    total: int
    skip: int
    take: int


class TransactionManager:
    """Submission payment orchestration.

    Coordinates the payment lifecycle:
    - Validate the submission, payment method and curator payout account
    - Create the provider payment and persist a pending transaction
    - Execute the approved payment and credit the curator exactly once
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        ledger: BalanceLedger,
        submissions: SubmissionLookup,
        payout_accounts: PayoutAccountResolver,
        config: SettlementConfig | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.ledger = ledger
        self.submissions = submissions
        self.payout_accounts = payout_accounts
        self.config = config or SettlementConfig()

    def initiate(
        self,
        *,
        submission_id: UUID,
        payment_method_id: UUID,
        return_url: str,
        cancel_url: str,
    ) -> InitiateResult:
        """Create a provider payment and a pending transaction for a submission.

        Args:
            submission_id: Submission being paid for
            payment_method_id: Artist's payment method
            return_url: Where the provider sends the payer after approval
            cancel_url: Where the provider sends the payer on cancel

        Returns:
            InitiateResult with the pending transaction and the approval URL.
            Free submissions skip the provider and come back succeeded.
            A pending transaction is returned again with its approval URL so
            the payer can finish the checkout.

        Raises:
            DuplicateTransaction: the submission is already paid
        """
        if not return_url or not cancel_url:
            raise ValidationError("return_url and cancel_url are required")

        submission = self.submissions.get_submission(submission_id)
        self._check_payment_method(payment_method_id, submission.artist_id)

        live = self._find_live_transaction(submission_id)
        if live is not None:
            if live.status == TransactionStatus.SUCCEEDED.value:
                raise DuplicateTransaction(submission_id)
            return self._resume_checkout(live)

        # Hard precondition: the curator must be able to receive payouts.
        self.payout_accounts.get_payout_address(submission.curator_id)

        split = split_submission_fee(submission.submission_fee, self.config.platform_fee_rate)

        if split.total == 0:
            return self._record_free_submission(submission_id, payment_method_id, split)

        try:
            payment = self.gateway.create_payment(
                split.total,
                self.config.currency,
                submission.payment_description,
                return_url,
                cancel_url,
            )
        except ProviderError as e:
            raise e.with_operation("create payment") from e

        transaction = self._insert_transaction(
            submission_id=submission_id,
            payment_method_id=payment_method_id,
            split=split,
            status=TransactionStatus.PENDING.value,
            provider_id=payment.id,
        )
        logger.info(
            "Initiated transaction %s for submission %s (payment=%s, total=%s)",
            transaction.transaction_id,
            submission_id,
            payment.id,
            split.total_amount,
        )
        return InitiateResult(transaction=transaction, approval_url=payment.approval_url, fee_split=split)

    def confirm(self, payment_id: str, payer_id: str) -> ConfirmResult:
        """Execute an approved payment and settle the transaction.

        Approved: transaction succeeded, submission ready for review, curator
        credited with the creator payout. Any other provider state: transaction
        failed, no credit.

        Raises:
            NotFound: no transaction for this provider payment id
            AlreadyProcessed: transaction already succeeded or failed
        """
        if not payment_id or not payer_id:
            raise ValidationError("payment_id and payer_id are required")

        transaction = self.db.execute(
            select(Transaction).where(Transaction.payment_provider_transaction_id == payment_id)
        ).scalar_one_or_none()
        if transaction is None:
            raise NotFound("Transaction", payment_id)
        if transaction.status != TransactionStatus.PENDING.value:
            raise AlreadyProcessed(transaction.transaction_id, transaction.status)

        try:
            executed = self.gateway.execute_payment(payment_id, payer_id)
        except ProviderError as e:
            raise e.with_operation("execute payment") from e

        new_status = (
            TransactionStatus.SUCCEEDED.value if executed.approved else TransactionStatus.FAILED.value
        )
        TransactionStateMachine.validate_transition(transaction.status, new_status)

        result = self.db.execute(
            update(Transaction)
            .where(
                Transaction.transaction_id == transaction.transaction_id,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .values(status=new_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            current = self.db.execute(
                select(Transaction.status).where(Transaction.transaction_id == transaction.transaction_id)
            ).scalar_one()
            raise AlreadyProcessed(transaction.transaction_id, current)

        submission = self.submissions.get_submission(transaction.submission_id)
        amount = quantize(transaction.creator_payout_amount)

        if not executed.approved:
            self.db.commit()
            self.db.refresh(transaction)
            logger.warning(
                "Payment %s executed with state %r; transaction %s marked failed",
                payment_id,
                executed.state,
                transaction.transaction_id,
            )
            return ConfirmResult(
                transaction=transaction,
                provider_state=executed.state,
                credited=False,
                curator_id=submission.curator_id,
                credited_amount=Decimal("0.00"),
            )

        self.submissions.mark_ready_for_review(transaction.submission_id)

        new_balance: Decimal | None = None
        reconciliation_id: UUID | None = None
        if amount > 0:
            try:
                with self.db.begin_nested():
                    new_balance = self.ledger.credit(submission.curator_id, amount)
            except (SQLAlchemyError, SettlementError) as e:
                reconciliation_id = self._record_credit_residue(
                    transaction.transaction_id, submission.curator_id, amount, str(e)
                )

        self.db.commit()
        self.db.refresh(transaction)

        logger.info(
            "Confirmed transaction %s (payment=%s, credited=%s)",
            transaction.transaction_id,
            payment_id,
            amount if reconciliation_id is None else Decimal("0.00"),
        )
        return ConfirmResult(
            transaction=transaction,
            provider_state=executed.state,
            credited=reconciliation_id is None and amount > 0,
            curator_id=submission.curator_id,
            credited_amount=amount if reconciliation_id is None else Decimal("0.00"),
            new_balance=new_balance,
            reconciliation_id=reconciliation_id,
        )

    def get_transaction(self, transaction_id: UUID) -> Transaction:
        transaction = self.db.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFound("Transaction", transaction_id)
        return transaction

    def get_by_submission(self, submission_id: UUID) -> Transaction:
        """Latest payment attempt for a submission; a live one wins over failed ones."""
        transaction = self._find_live_transaction(submission_id)
        if transaction is None:
            transaction = self.db.execute(
                select(Transaction)
                .where(Transaction.submission_id == submission_id)
                .order_by(Transaction.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()
        if transaction is None:
            raise NotFound("Transaction for submission", submission_id)
        return transaction

    def list_for_curator(
        self, user_id: UUID, skip: int = 0, take: int = 10, status: str | None = None
    ) -> TransactionPage:
        """Transactions on the curator's playlists, newest first."""
        query = (
            select(Transaction)
            .join(Submission, Submission.submission_id == Transaction.submission_id)
            .join(Playlist, Playlist.playlist_id == Submission.playlist_id)
            .where(Playlist.creator_id == user_id)
        )
        return page_transactions(self.db, query, skip, take, status)

    def list_for_artist(
        self, user_id: UUID, skip: int = 0, take: int = 10, status: str | None = None
    ) -> TransactionPage:
        """Payments the artist made for their submissions, newest first."""
        query = (
            select(Transaction)
            .join(Submission, Submission.submission_id == Transaction.submission_id)
            .where(Submission.artist_id == user_id)
        )
        return page_transactions(self.db, query, skip, take, status)

    def total_earnings(self, user_id: UUID) -> tuple[Decimal, int]:
        """Sum of creator payouts and count over the curator's succeeded transactions."""
        return self._earnings(user_id, since=None)

    def earnings_stats(self, user_id: UUID, period: str) -> EarningsStats:
        """Curator earnings over the trailing day, week, month (30d) or year (365d)."""
        window = EARNINGS_PERIODS.get(period)
        if window is None:
            raise ValidationError(f"period must be one of {sorted(EARNINGS_PERIODS)}")
        earnings, count = self._earnings(user_id, since=utcnow() - window)
        return EarningsStats(
            period=period,
            earnings=earnings,
            transaction_count=count,
            currency=self.config.currency,
        )

    def _earnings(self, user_id: UUID, since: datetime | None) -> tuple[Decimal, int]:
        query = (
            select(
                func.coalesce(func.sum(Transaction.creator_payout_amount), 0),
                func.count(Transaction.transaction_id),
            )
            .join(Submission, Submission.submission_id == Transaction.submission_id)
            .join(Playlist, Playlist.playlist_id == Submission.playlist_id)
            .where(
                Playlist.creator_id == user_id,
                Transaction.status == TransactionStatus.SUCCEEDED.value,
            )
        )
        if since is not None:
            query = query.where(Transaction.created_at >= since)
        total, count = self.db.execute(query).one()
        return quantize(total), int(count)

    def _check_payment_method(self, payment_method_id: UUID, artist_id: UUID) -> None:
        method = self.db.get(PaymentMethod, payment_method_id)
        if method is None:
            raise NotFound("Payment method", payment_method_id)
        if method.user_id != artist_id:
            raise PaymentMethodMismatch("Payment method does not belong to the submission artist")

    def _find_live_transaction(self, submission_id: UUID) -> Transaction | None:
        """The pending or succeeded transaction of a submission; failed ones don't count."""
        return self.db.execute(
            select(Transaction).where(
                Transaction.submission_id == submission_id,
                Transaction.status != TransactionStatus.FAILED.value,
            )
        ).scalar_one_or_none()

    def _resume_checkout(self, transaction: Transaction) -> InitiateResult:
        """Hand back the approval link of a checkout the payer never finished."""
        payment_id = transaction.payment_provider_transaction_id or ""
        try:
            payment = self.gateway.get_payment(payment_id)
        except ProviderError as e:
            raise e.with_operation("resume payment") from e

        split = FeeSplit(
            total=to_minor_units(transaction.amount_total),
            platform_fee=to_minor_units(transaction.platform_fee),
            creator_payout=to_minor_units(transaction.creator_payout_amount),
        )
        logger.info(
            "Resuming pending transaction %s for submission %s (payment=%s, provider state=%s)",
            transaction.transaction_id,
            transaction.submission_id,
            payment_id,
            payment.get("state"),
        )
        return InitiateResult(
            transaction=transaction,
            approval_url=approval_link(payment),
            fee_split=split,
            resumed=True,
        )

    def _record_free_submission(
        self, submission_id: UUID, payment_method_id: UUID, split: FeeSplit
    ) -> InitiateResult:
        """Zero-fee submissions settle immediately without the provider."""
        transaction = self._insert_transaction(
            submission_id=submission_id,
            payment_method_id=payment_method_id,
            split=split,
            status=TransactionStatus.SUCCEEDED.value,
            provider_id=f"free_{uuid4().hex}",
            commit=False,
        )
        self.submissions.mark_ready_for_review(submission_id)
        self.db.commit()
        logger.info("Free submission %s settled as transaction %s", submission_id, transaction.transaction_id)
        return InitiateResult(transaction=transaction, approval_url=None, fee_split=split)

    def _insert_transaction(
        self,
        *,
        submission_id: UUID,
        payment_method_id: UUID,
        split: FeeSplit,
        status: str,
        provider_id: str,
        commit: bool = True,
    ) -> Transaction:
        transaction = Transaction(
            transaction_id=uuid4(),
            submission_id=submission_id,
            payment_method_id=payment_method_id,
            amount_total=split.total_amount,
            currency=self.config.currency,
            platform_fee=split.platform_fee_amount,
            creator_payout_amount=split.creator_payout_amount,
            status=status,
            payment_provider_transaction_id=provider_id,
        )
        self.db.add(transaction)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateTransaction(submission_id) from e
        if commit:
            self.db.commit()
        return transaction

    def _record_credit_residue(
        self, transaction_id: UUID, user_id: UUID, amount: Decimal, reason: str
    ) -> UUID:
        """Persist the credit that could not be applied, for out-of-band correction."""
        record = CreditReconciliation(
            reconciliation_id=uuid4(),
            transaction_id=transaction_id,
            user_id=user_id,
            amount=amount,
            reason=reason,
        )
        self.db.add(record)
        self.db.flush()
        logger.error(
            "Balance credit failed after payment confirmation: transaction=%s user=%s amount=%s "
            "reconciliation=%s reason=%s",
            transaction_id,
            user_id,
            amount,
            record.reconciliation_id,
            reason,
        )
        return record.reconciliation_id


def check_page(skip: int, take: int) -> None:
    if skip < 0:
        raise ValidationError("skip must be >= 0")
    if not 1 <= take <= 100:
        raise ValidationError("take must be between 1 and 100")


def page_transactions(
    db: Session,
    query: Select | None = None,
    skip: int = 0,
    take: int = 10,
    status: str | None = None,
) -> TransactionPage:
    """Transactions matching ``query`` (all of them by default), newest first. Read-only."""
    check_page(skip, take)
    if query is None:
        query = select(Transaction)
    if status is not None:
        if status not in TRANSACTION_STATUSES:
            raise ValidationError(f"status must be one of {sorted(TRANSACTION_STATUSES)}")
        query = query.where(Transaction.status == status)
    total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
    items = db.execute(
        query.order_by(Transaction.created_at.desc(), Transaction.transaction_id)
        .offset(skip)
        .limit(take)
    ).scalars().all()
    return TransactionPage(items=list(items), total=total, skip=skip, take=take)
