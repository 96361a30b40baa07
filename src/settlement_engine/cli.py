"""Settlement Command Line Interface.

Provides operational tools for:
- Balance queries and drift checks
- Withdrawal and payment history
- Open credit reconciliation records
- Metrics emission and daily health

Usage:
    python -m settlement_engine.cli balance --user-id X
    python -m settlement_engine.cli withdrawals --user-id X --take 20
    python -m settlement_engine.cli transactions --status failed
    python -m settlement_engine.cli reconciliations
    python -m settlement_engine.cli metrics --format prometheus
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.database import init_db
from settlement_engine.errors import SettlementError
from settlement_engine.metrics import SettlementMetricsCollector, generate_daily_health_summary
from settlement_engine.models import Base, CreditReconciliation
from settlement_engine.services.balance_ledger import BalanceLedger
from settlement_engine.services.transaction_manager import page_transactions
from settlement_engine.services.withdrawal_manager import page_withdrawals


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class SettlementCli:
    """Settlement Command Line Interface."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.parser = self._build_parser()
        self._session_factory = session_factory

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="python -m settlement_engine.cli",
            description="Settlement operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # balance command
        balance = subparsers.add_parser("balance", help="Query a curator balance")
        balance.add_argument("--user-id", type=parse_uuid, required=True, help="Curator user ID")
        balance.add_argument(
            "--check-drift",
            action="store_true",
            help="Compare the stored balance with transaction and withdrawal history",
        )

        # withdrawals command
        withdrawals = subparsers.add_parser("withdrawals", help="List a curator's withdrawals")
        withdrawals.add_argument("--user-id", type=parse_uuid, required=True, help="Curator user ID")
        withdrawals.add_argument("--skip", type=int, default=0)
        withdrawals.add_argument("--take", type=int, default=10)

        # transactions command
        transactions = subparsers.add_parser("transactions", help="List submission payments")
        transactions.add_argument(
            "--status",
            choices=["pending", "succeeded", "failed"],
            help="Only transactions in this status",
        )
        transactions.add_argument("--skip", type=int, default=0)
        transactions.add_argument("--take", type=int, default=10)

        # reconciliations command
        recon = subparsers.add_parser(
            "reconciliations",
            help="List confirmed payments whose balance credit failed",
        )
        recon.add_argument("--all", action="store_true", help="Include resolved records")

        # metrics command
        metrics = subparsers.add_parser("metrics", help="Emit settlement metrics")
        metrics.add_argument(
            "--format",
            type=str,
            choices=["json", "prometheus"],
            default="json",
            help="Output format",
        )

        # health command
        subparsers.add_parser("health", help="Daily settlement health summary")

        # init-db command
        subparsers.add_parser("init-db", help="Create tables for local development")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "balance": self._cmd_balance,
            "withdrawals": self._cmd_withdrawals,
            "transactions": self._cmd_transactions,
            "reconciliations": self._cmd_reconciliations,
            "metrics": self._cmd_metrics,
            "health": self._cmd_health,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except SettlementError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1

    def _session(self) -> Session:
        if self._session_factory is None:
            _, self._session_factory = init_db()
        return self._session_factory()

    def _cmd_balance(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            ledger = BalanceLedger(session)
            available = ledger.get_available(args.user_id)

            print(f"Balance for user: {args.user_id}")
            print(f"\n  Balance:     {available.balance:>12,.2f}")
            print(f"  In flight:   {available.pending_withdrawals:>12,.2f}")
            print(f"  Available:   {available.available:>12,.2f}")

            if not args.check_drift:
                return 0

            snapshot = ledger.reconciliation_snapshot(args.user_id)
            print(f"\n  Succeeded payouts:     {snapshot.succeeded_payouts:>12,.2f}")
            print(f"  Completed withdrawals: {snapshot.completed_withdrawals:>12,.2f}")
            print(f"  Expected balance:      {snapshot.expected_balance:>12,.2f}")
            if snapshot.drift != 0:
                print(f"\n  DRIFT: {snapshot.drift:,.2f}")
                return 2
            print("\n  No drift")
            return 0

    def _cmd_withdrawals(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            page = page_withdrawals(session, args.user_id, args.skip, args.take)

            print(f"Withdrawals for user {args.user_id} ({page.total} total)")
            for w in page.items:
                batch = w.payout_batch_id or "-"
                line = f"  {w.created_at:%Y-%m-%d %H:%M}  {w.amount:>10,.2f} {w.currency}  {w.status:<10}  {batch}"
                if w.error_message:
                    line += f"  ({w.error_message})"
                print(line)
        return 0

    def _cmd_transactions(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            page = page_transactions(session, skip=args.skip, take=args.take, status=args.status)

            scope = f"{args.status} " if args.status else ""
            print(f"Transactions: {page.total} {scope}total")
            for t in page.items:
                print(
                    f"  {t.created_at:%Y-%m-%d %H:%M}  {t.transaction_id}  {t.amount_total:>10,.2f} {t.currency}  "
                    f"{t.status:<10}  {t.payment_provider_transaction_id or '-'}"
                )
        return 0

    def _cmd_reconciliations(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            query = select(CreditReconciliation).order_by(CreditReconciliation.created_at)
            if not args.all:
                query = query.where(CreditReconciliation.status == "open")
            records = session.execute(query).scalars().all()

            if not records:
                print("No reconciliation records")
                return 0

            for r in records:
                print(
                    f"  {r.reconciliation_id}  txn={r.transaction_id}  user={r.user_id}  "
                    f"amount={r.amount:,.2f}  status={r.status}"
                )
                print(f"      reason: {r.reason}")
            return 0

    def _cmd_metrics(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            metrics = SettlementMetricsCollector(session).collect()
        if args.format == "json":
            print(metrics.to_json())
        else:
            print(metrics.to_prometheus())
        return 0

    def _cmd_health(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            summary = generate_daily_health_summary(session)

        print("Settlement Health Check")
        print("=" * 40)
        print(f"  Date:                    {summary.date}")
        print(f"  Negative balances:       {summary.negative_balance_count}")
        print(f"  Open reconciliations:    {summary.open_reconciliations}")
        print(f"  Stale pending payments:  {summary.stale_pending_transactions}")
        print(f"  Failed withdrawals:      {summary.failed_withdrawals}")
        for alert in summary.alerts:
            print(f"  {alert}")
        return 1 if summary.negative_balance_count else 0

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            Base.metadata.create_all(session.get_bind())
        print(json.dumps({"status": "created", "tables": sorted(Base.metadata.tables)}))
        return 0


def main() -> int:
    """CLI entry point."""
    cli = SettlementCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
