"""Tests for the settlement operational CLI."""

import json
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_engine.cli import SettlementCli
from settlement_engine.models import CreditReconciliation, Transaction


@pytest.fixture
def cli(session_factory) -> SettlementCli:
    return SettlementCli(session_factory)


class TestBalanceCommand:
    def test_balance(self, cli, capsys, test_data):
        curator = test_data.create_curator(balance=Decimal("100.00"))
        test_data.add_withdrawal(curator.user_id, Decimal("40.00"), status="processing")

        exit_code = cli.run(["balance", "--user-id", str(curator.user_id)])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "100.00" in out
        assert "40.00" in out
        assert "60.00" in out

    def test_drift_detected(self, cli, capsys, test_data):
        curator = test_data.create_curator(balance=Decimal("5.00"))

        exit_code = cli.run(["balance", "--user-id", str(curator.user_id), "--check-drift"])

        assert exit_code == 2
        assert "DRIFT: 5.00" in capsys.readouterr().out

    def test_no_drift(self, cli, capsys, test_data):
        curator = test_data.create_curator()

        exit_code = cli.run(["balance", "--user-id", str(curator.user_id), "--check-drift"])

        assert exit_code == 0
        assert "No drift" in capsys.readouterr().out

    def test_unknown_user(self, cli, capsys):
        exit_code = cli.run(["balance", "--user-id", str(uuid4())])

        assert exit_code == 1
        assert "not found" in capsys.readouterr().err


class TestWithdrawalsCommand:
    def test_lists_withdrawals(self, cli, capsys, test_data):
        curator = test_data.create_curator(balance=Decimal("100.00"))
        test_data.add_withdrawal(curator.user_id, Decimal("10.00"), status="completed")
        failed = test_data.add_withdrawal(curator.user_id, Decimal("20.00"), status="failed")
        failed.error_message = "Receiver is unregistered"
        test_data.db.commit()

        exit_code = cli.run(["withdrawals", "--user-id", str(curator.user_id)])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "(2 total)" in out
        assert "completed" in out
        assert "(Receiver is unregistered)" in out

    def test_bad_page_size(self, cli, capsys):
        exit_code = cli.run(["withdrawals", "--user-id", str(uuid4()), "--take", "0"])

        assert exit_code == 1
        assert "take must be between 1 and 100" in capsys.readouterr().err


class TestTransactionsCommand:
    def _add_transaction(self, db, refs, status, provider_id):
        db.add(
            Transaction(
                submission_id=refs.submission_id,
                payment_method_id=refs.payment_method_id,
                amount_total=Decimal("10.00"),
                platform_fee=Decimal("0.50"),
                creator_payout_amount=Decimal("9.50"),
                status=status,
                payment_provider_transaction_id=provider_id,
            )
        )
        db.commit()

    def test_filters_by_status(self, cli, capsys, db, test_data):
        refs = test_data.create_submission()
        self._add_transaction(db, refs, "failed", "PAYID-DECLINED")
        self._add_transaction(db, refs, "succeeded", "PAYID-RETRIED")

        assert cli.run(["transactions", "--status", "failed"]) == 0
        out = capsys.readouterr().out
        assert "1 failed total" in out
        assert "PAYID-DECLINED" in out
        assert "PAYID-RETRIED" not in out

        assert cli.run(["transactions"]) == 0
        assert "Transactions: 2 total" in capsys.readouterr().out

    def test_unknown_status(self, cli):
        with pytest.raises(SystemExit):
            cli.run(["transactions", "--status", "refunded"])


class TestReconciliationsCommand:
    def test_no_records(self, cli, capsys):
        assert cli.run(["reconciliations"]) == 0
        assert "No reconciliation records" in capsys.readouterr().out

    def test_open_records(self, cli, capsys, db, test_data):
        refs = test_data.create_submission()
        txn = Transaction(
            submission_id=refs.submission_id,
            payment_method_id=refs.payment_method_id,
            amount_total=Decimal("10.00"),
            platform_fee=Decimal("0.50"),
            creator_payout_amount=Decimal("9.50"),
            status="succeeded",
            payment_provider_transaction_id="PAYID-RECON",
        )
        db.add(txn)
        db.flush()
        db.add(
            CreditReconciliation(
                transaction_id=txn.transaction_id,
                user_id=refs.curator_id,
                amount=Decimal("9.50"),
                reason="balance row unavailable",
            )
        )
        db.add(
            CreditReconciliation(
                transaction_id=txn.transaction_id,
                user_id=refs.curator_id,
                amount=Decimal("1.00"),
                reason="already fixed",
                status="resolved",
            )
        )
        db.commit()

        assert cli.run(["reconciliations"]) == 0
        out = capsys.readouterr().out
        assert "amount=9.50" in out
        assert "balance row unavailable" in out
        assert "already fixed" not in out

        assert cli.run(["reconciliations", "--all"]) == 0
        assert "already fixed" in capsys.readouterr().out


class TestMetricsCommand:
    def test_json(self, cli, capsys):
        assert cli.run(["metrics"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert "metrics" in data

    def test_prometheus(self, cli, capsys):
        assert cli.run(["metrics", "--format", "prometheus"]) == 0
        assert "# TYPE settlement_negative_balances gauge" in capsys.readouterr().out


class TestHealthCommand:
    def test_healthy(self, cli, capsys):
        assert cli.run(["health"]) == 0
        assert "Settlement Health Check" in capsys.readouterr().out


class TestMisc:
    def test_no_command_prints_help(self, cli, capsys):
        assert cli.run([]) == 1
        assert "usage:" in capsys.readouterr().out

    def test_init_db(self, cli, capsys):
        assert cli.run(["init-db"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "created"
        assert "withdrawals" in data["tables"]

    def test_invalid_uuid(self, cli):
        with pytest.raises(SystemExit):
            cli.run(["balance", "--user-id", "not-a-uuid"])
