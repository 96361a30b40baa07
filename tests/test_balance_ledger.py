"""Tests for the balance ledger."""

from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_engine.errors import InvariantViolation, NotFound, ValidationError
from settlement_engine.models import Transaction
from settlement_engine.services.balance_ledger import BalanceLedger


class TestCredit:
    """Atomic balance increments."""

    def test_credit_increments_balance(self, ledger: BalanceLedger, test_data):
        curator = test_data.create_curator(balance=Decimal("5.00"))

        new_balance = ledger.credit(curator.user_id, Decimal("9.50"))

        assert new_balance == Decimal("14.50")
        assert ledger.get_balance(curator.user_id) == Decimal("14.50")

    def test_credit_unknown_user(self, ledger: BalanceLedger):
        with pytest.raises(NotFound):
            ledger.credit(uuid4(), Decimal("1.00"))

    def test_credit_rejects_non_positive(self, ledger: BalanceLedger, test_data):
        curator = test_data.create_curator()
        with pytest.raises(ValidationError):
            ledger.credit(curator.user_id, Decimal("0"))


class TestDebit:
    """Conditional decrements never drive the balance negative."""

    def test_debit_decrements_balance(self, ledger: BalanceLedger, test_data):
        curator = test_data.create_curator(balance=Decimal("100.00"))

        assert ledger.debit(curator.user_id, Decimal("60.00")) == Decimal("40.00")

    def test_debit_to_exactly_zero(self, ledger: BalanceLedger, test_data):
        curator = test_data.create_curator(balance=Decimal("20.00"))

        assert ledger.debit(curator.user_id, Decimal("20.00")) == Decimal("0.00")

    def test_overdraft_raises_and_changes_nothing(self, ledger: BalanceLedger, test_data):
        curator = test_data.create_curator(balance=Decimal("10.00"))

        with pytest.raises(InvariantViolation, match="negative"):
            ledger.debit(curator.user_id, Decimal("20.00"))

        assert ledger.get_balance(curator.user_id) == Decimal("10.00")

    def test_debit_unknown_user(self, ledger: BalanceLedger):
        with pytest.raises(NotFound):
            ledger.debit(uuid4(), Decimal("1.00"))


class TestAvailable:
    """Available balance subtracts in-flight withdrawals."""

    def test_no_withdrawals(self, ledger: BalanceLedger, test_data):
        curator = test_data.create_curator(balance=Decimal("100.00"))

        available = ledger.get_available(curator.user_id)

        assert available.balance == Decimal("100.00")
        assert available.pending_withdrawals == Decimal("0.00")
        assert available.available == Decimal("100.00")

    def test_in_flight_withdrawals_are_held(self, ledger: BalanceLedger, test_data):
        curator = test_data.create_curator(balance=Decimal("100.00"))
        test_data.add_withdrawal(curator.user_id, Decimal("20.00"), status="pending")
        test_data.add_withdrawal(curator.user_id, Decimal("10.00"), status="processing")
        test_data.add_withdrawal(curator.user_id, Decimal("40.00"), status="failed")
        test_data.add_withdrawal(curator.user_id, Decimal("5.00"), status="completed")

        available = ledger.get_available(curator.user_id)

        assert available.pending_withdrawals == Decimal("30.00")
        assert available.available == Decimal("70.00")

    def test_unknown_user(self, ledger: BalanceLedger):
        with pytest.raises(NotFound):
            ledger.get_available(uuid4())

    def test_lock_unknown_user(self, ledger: BalanceLedger):
        with pytest.raises(NotFound):
            ledger.lock_user(uuid4())


class TestReconciliationSnapshot:
    """Stored balance against succeeded payouts minus completed withdrawals."""

    def test_consistent_history_has_no_drift(self, db, ledger: BalanceLedger, test_data):
        refs = test_data.create_submission(fee=Decimal("10.00"))
        db.add(
            Transaction(
                submission_id=refs.submission_id,
                payment_method_id=refs.payment_method_id,
                amount_total=Decimal("10.00"),
                platform_fee=Decimal("0.50"),
                creator_payout_amount=Decimal("9.50"),
                status="succeeded",
                payment_provider_transaction_id="PAYID-HISTORY",
            )
        )
        db.commit()
        ledger.credit(refs.curator_id, Decimal("9.50"))
        db.commit()

        snapshot = ledger.reconciliation_snapshot(refs.curator_id)

        assert snapshot.succeeded_payouts == Decimal("9.50")
        assert snapshot.completed_withdrawals == Decimal("0.00")
        assert snapshot.expected_balance == Decimal("9.50")
        assert snapshot.drift == Decimal("0.00")

    def test_unexplained_balance_is_drift(self, ledger: BalanceLedger, test_data):
        curator = test_data.create_curator(balance=Decimal("5.00"))

        snapshot = ledger.reconciliation_snapshot(curator.user_id)

        assert snapshot.drift == Decimal("5.00")
