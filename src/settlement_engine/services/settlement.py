"""Settlement Facade - the one integration path for settlement operations.

Usage:
    settlement = SettlementService(session, gateway, config)

    # Artist pays for a submission; redirect them to the approval URL
    result = settlement.process_payment(submission_id=..., payment_method_id=..., ...)

    # Provider redirected back after approval
    result = settlement.complete_payment(payment_id, payer_id)

    # Curator cashes out
    result = settlement.withdraw(curator_id, Decimal("25.00"))

The facade:
- Wires the ledger and managers onto one session
- Emits domain events after each committed step
- Exposes the balance and earnings read models
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from settlement_engine import errors
from settlement_engine.config import SettlementConfig
from settlement_engine.events.emitter import EventEmitter
from settlement_engine.events.types import (
    BalanceCredited,
    CreditReconciliationRequired,
    DomainEvent,
    EventMetadata,
    PaymentConfirmed,
    PaymentInitiated,
    PaymentRejected,
    WithdrawalCompleted,
    WithdrawalFailed,
    WithdrawalRequested,
)
from settlement_engine.models import Transaction, Withdrawal
from settlement_engine.money import validate_positive_amount
from settlement_engine.providers.base import PaymentGateway
from settlement_engine.services.balance_ledger import BalanceLedger
from settlement_engine.services.collaborators import (
    DbSubmissionLookup,
    LinkedAccountPayoutResolver,
    PayoutAccountResolver,
    SubmissionLookup,
)
from settlement_engine.services.state_machine import TransactionStatus
from settlement_engine.services.transaction_manager import (
    ConfirmResult,
    EarningsStats,
    InitiateResult,
    TransactionManager,
    TransactionPage,
)
from settlement_engine.services.withdrawal_manager import (
    WithdrawalManager,
    WithdrawalPage,
    WithdrawalResult,
)

logger = logging.getLogger(__name__)

SOURCE_SERVICE = "settlement.facade"


@dataclass(frozen=True)
class BalanceSummary:
    """Curator balance read model."""

    balance: Decimal
    pending_withdrawals: Decimal
    available: Decimal
    total_earnings: Decimal
    total_transactions: int
    currency: str


class SettlementService:
    """Synchronous settlement facade.

    Each operation maps onto one Transaction Manager or Withdrawal Manager
    call. Events are emitted only after the underlying step committed, and a
    handler that fails is logged here without reaching the caller.
    """

    def __init__(
        self,
        session: Session,
        gateway: PaymentGateway,
        config: SettlementConfig | None = None,
        *,
        submissions: SubmissionLookup | None = None,
        payout_accounts: PayoutAccountResolver | None = None,
        ledger: BalanceLedger | None = None,
        event_emitter: EventEmitter | None = None,
    ) -> None:
        self._session = session
        self._config = config or SettlementConfig()
        self._gateway = gateway

        self._ledger = ledger or BalanceLedger(session)
        self._submissions = submissions or DbSubmissionLookup(session)
        payout_accounts = payout_accounts or LinkedAccountPayoutResolver(session)
        self._transactions = TransactionManager(
            session,
            gateway,
            self._ledger,
            self._submissions,
            payout_accounts,
            self._config,
        )
        self._withdrawals = WithdrawalManager(
            session, gateway, self._ledger, payout_accounts, self._config
        )

        self._emitter = event_emitter

    @property
    def ledger(self) -> BalanceLedger:
        return self._ledger

    def process_payment(
        self,
        *,
        submission_id: UUID,
        payment_method_id: UUID,
        return_url: str,
        cancel_url: str,
        actor_id: UUID | None = None,
    ) -> InitiateResult:
        """Start payment for a submission; returns the provider approval URL.

        Resuming an unfinished checkout emits nothing new.
        """
        result = self._transactions.initiate(
            submission_id=submission_id,
            payment_method_id=payment_method_id,
            return_url=return_url,
            cancel_url=cancel_url,
        )
        if result.resumed:
            return result
        transaction = result.transaction
        self._emit(PaymentInitiated(
            metadata=self._metadata(actor_id),
            transaction_id=transaction.transaction_id,
            submission_id=transaction.submission_id,
            provider_payment_id=transaction.payment_provider_transaction_id or "",
            amount_total=result.fee_split.total_amount,
            platform_fee=result.fee_split.platform_fee_amount,
            creator_payout_amount=result.fee_split.creator_payout_amount,
            currency=transaction.currency,
            is_free_submission=result.is_free_submission,
        ))
        return result

    def complete_payment(
        self, payment_id: str, payer_id: str, actor_id: UUID | None = None
    ) -> ConfirmResult:
        """Execute an approved payment and credit the curator."""
        result = self._transactions.confirm(payment_id, payer_id)
        transaction = result.transaction
        correlation_id = uuid4()

        if transaction.status != TransactionStatus.SUCCEEDED.value:
            self._emit(PaymentRejected(
                metadata=self._metadata(actor_id, correlation_id),
                transaction_id=transaction.transaction_id,
                submission_id=transaction.submission_id,
                provider_payment_id=payment_id,
                provider_state=result.provider_state,
            ))
            return result

        self._emit(PaymentConfirmed(
            metadata=self._metadata(actor_id, correlation_id),
            transaction_id=transaction.transaction_id,
            submission_id=transaction.submission_id,
            provider_payment_id=payment_id,
            provider_state=result.provider_state,
            curator_id=result.curator_id,
        ))
        if result.credited and result.new_balance is not None:
            self._emit(BalanceCredited(
                metadata=self._metadata(actor_id, correlation_id),
                user_id=result.curator_id,
                transaction_id=transaction.transaction_id,
                amount=result.credited_amount,
                new_balance=result.new_balance,
                currency=transaction.currency,
            ))
        elif result.reconciliation_id is not None:
            self._emit(CreditReconciliationRequired(
                metadata=self._metadata(actor_id, correlation_id),
                reconciliation_id=result.reconciliation_id,
                transaction_id=transaction.transaction_id,
                user_id=result.curator_id,
                amount=Decimal(transaction.creator_payout_amount),
            ))
        return result

    def get_balance(self, user_id: UUID) -> BalanceSummary:
        """Balance, holds, and lifetime earnings for a curator."""
        available = self._ledger.get_available(user_id)
        total_earnings, total_transactions = self._transactions.total_earnings(user_id)
        return BalanceSummary(
            balance=available.balance,
            pending_withdrawals=available.pending_withdrawals,
            available=max(available.available, Decimal("0.00")),
            total_earnings=total_earnings,
            total_transactions=total_transactions,
            currency=self._config.currency,
        )

    def get_earnings_stats(self, user_id: UUID, period: str = "month") -> EarningsStats:
        return self._transactions.earnings_stats(user_id, period)

    def withdraw(
        self, user_id: UUID, amount: Decimal | str | int, actor_id: UUID | None = None
    ) -> WithdrawalResult:
        """Pay out part of the curator's balance through the provider."""
        amount = validate_positive_amount(amount)
        correlation_id = uuid4()

        def requested(withdrawal_id: UUID) -> None:
            self._emit(WithdrawalRequested(
                metadata=self._metadata(actor_id or user_id, correlation_id),
                withdrawal_id=withdrawal_id,
                user_id=user_id,
                amount=amount,
                currency=self._config.currency,
            ))

        try:
            result = self._withdrawals.withdraw(user_id, amount, on_claimed=requested)
        except errors.WithdrawalFailed as e:
            self._emit(WithdrawalFailed(
                metadata=self._metadata(actor_id or user_id, correlation_id),
                withdrawal_id=UUID(str(e.withdrawal_id)),
                user_id=user_id,
                amount=amount,
                error_message=e.provider_message,
            ))
            raise

        self._emit(WithdrawalCompleted(
            metadata=self._metadata(actor_id or user_id, correlation_id),
            withdrawal_id=result.withdrawal.withdrawal_id,
            user_id=user_id,
            amount=Decimal(result.withdrawal.amount),
            currency=result.withdrawal.currency,
            payout_batch_id=result.payout_batch_id,
            new_balance=result.new_balance,
        ))
        return result

    def list_withdrawals(self, user_id: UUID, skip: int = 0, take: int = 10) -> WithdrawalPage:
        return self._withdrawals.list(user_id, skip=skip, take=take)

    def get_withdrawal(self, withdrawal_id: UUID) -> Withdrawal:
        return self._withdrawals.get_withdrawal(withdrawal_id)

    def get_transaction(self, transaction_id: UUID) -> Transaction:
        return self._transactions.get_transaction(transaction_id)

    def list_transactions(
        self, user_id: UUID, skip: int = 0, take: int = 10, status: str | None = None
    ) -> TransactionPage:
        """Transactions on the curator's playlists."""
        return self._transactions.list_for_curator(user_id, skip=skip, take=take, status=status)

    def list_artist_transactions(
        self, user_id: UUID, skip: int = 0, take: int = 10, status: str | None = None
    ) -> TransactionPage:
        """Payments the artist made."""
        return self._transactions.list_for_artist(user_id, skip=skip, take=take, status=status)

    def get_submission_payment(self, submission_id: UUID, viewer_id: UUID | None = None) -> Transaction:
        """Payment of a submission, visible only to its artist and curator when ``viewer_id`` is set."""
        if viewer_id is not None:
            submission = self._submissions.get_submission(submission_id)
            if viewer_id not in (submission.artist_id, submission.curator_id):
                raise errors.NotFound("Transaction for submission", submission_id)
        return self._transactions.get_by_submission(submission_id)

    def _metadata(self, actor_id: UUID | None, correlation_id: UUID | None = None) -> EventMetadata:
        return EventMetadata.create(
            correlation_id=correlation_id,
            actor_id=actor_id,
            actor_type="user" if actor_id else "system",
            source_service=SOURCE_SERVICE,
        )

    def _emit(self, event: DomainEvent) -> None:
        if self._emitter is None:
            return
        failures = self._emitter.emit(event)
        if failures:
            logger.warning(
                "%d of the handlers for %s failed (correlation=%s); settlement state is unaffected",
                len(failures),
                event.event_type,
                event.metadata.correlation_id,
            )
