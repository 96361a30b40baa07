"""Settlement Observability Metrics.

Metric Categories:
- Transaction metrics: counts by status, platform fee collected
- Withdrawal metrics: counts by status, amount held in flight
- Balance metrics: total curator balance, negative balances
- Reconciliation metrics: open credit residue records

Usage:
    collector = SettlementMetricsCollector(session)
    metrics = collector.collect()

    # For Prometheus export
    print(metrics.to_prometheus())

    # For JSON export
    print(metrics.to_json())
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.orm import Session

from settlement_engine.models.base import utcnow
from settlement_engine.services.state_machine import TransactionStatus, WithdrawalStatus

STALE_PENDING_AFTER = timedelta(hours=24)


@dataclass
class Counter:
    """A counter metric (monotonically increasing)."""

    name: str
    value: int
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


@dataclass
class Gauge:
    """A gauge metric (can go up or down)."""

    name: str
    value: float | int | Decimal
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


@dataclass
class SettlementMetrics:
    """Collection of all settlement metrics."""

    transactions_by_status: list[Counter]
    withdrawals_by_status: list[Counter]
    platform_fees_total: Gauge
    curator_balance_total: Gauge
    withdrawals_in_flight_amount: Gauge

    # Health indicators
    negative_balances: Gauge
    open_reconciliations: Gauge
    stale_pending_transactions: Gauge

    collected_at: datetime = field(default_factory=utcnow)

    def metrics(self) -> list[Counter | Gauge]:
        """Every metric in export order."""
        return [
            *self.transactions_by_status,
            *self.withdrawals_by_status,
            self.platform_fees_total,
            self.curator_balance_total,
            self.withdrawals_in_flight_amount,
            self.negative_balances,
            self.open_reconciliations,
            self.stale_pending_transactions,
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "collected_at": self.collected_at.isoformat(),
            "metrics": [_metric_to_dict(m) for m in self.metrics()],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def to_prometheus(self) -> str:
        """Convert to Prometheus text format."""
        lines: list[str] = []
        described: set[str] = set()

        for metric in self.metrics():
            if metric.name not in described:
                if metric.help_text:
                    lines.append(f"# HELP {metric.name} {metric.help_text}")
                metric_type = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# TYPE {metric.name} {metric_type}")
                described.add(metric.name)

            labels = ""
            if metric.labels:
                label_parts = [f'{k}="{v}"' for k, v in metric.labels.items()]
                labels = "{" + ",".join(label_parts) + "}"
            lines.append(f"{metric.name}{labels} {_numeric(metric.value)}")

        return "\n".join(lines)


def _numeric(value: float | int | Decimal) -> float | int:
    return float(value) if isinstance(value, Decimal) else value


def _metric_to_dict(metric: Counter | Gauge) -> dict[str, Any]:
    return {
        "name": metric.name,
        "type": "counter" if isinstance(metric, Counter) else "gauge",
        "value": _numeric(metric.value),
        "labels": metric.labels,
        "help": metric.help_text,
    }


class SettlementMetricsCollector:
    """Collects settlement metrics from the database."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def collect(self) -> SettlementMetrics:
        return SettlementMetrics(
            transactions_by_status=self._count_by_status(
                "transactions",
                [s.value for s in TransactionStatus],
                "settlement_transactions_total",
                "Transactions by status",
            ),
            withdrawals_by_status=self._count_by_status(
                "withdrawals",
                [s.value for s in WithdrawalStatus],
                "settlement_withdrawals_total",
                "Withdrawals by status",
            ),
            platform_fees_total=self._gauge_platform_fees(),
            curator_balance_total=self._gauge_total_balance(),
            withdrawals_in_flight_amount=self._gauge_in_flight_withdrawals(),
            negative_balances=self._gauge_negative_balances(),
            open_reconciliations=self._gauge_open_reconciliations(),
            stale_pending_transactions=self._gauge_stale_pending(),
        )

    def _count_by_status(
        self, table: str, statuses: list[str], name: str, help_text: str
    ) -> list[Counter]:
        rows = self._session.execute(
            text(f"SELECT status, COUNT(*) FROM {table} GROUP BY status")
        ).all()
        counts = {status: int(count) for status, count in rows}
        return [
            Counter(name=name, value=counts.get(status, 0), labels={"status": status}, help_text=help_text)
            for status in statuses
        ]

    def _gauge_platform_fees(self) -> Gauge:
        result = self._session.execute(
            text("SELECT COALESCE(SUM(platform_fee), 0) FROM transactions WHERE status = :status"),
            {"status": TransactionStatus.SUCCEEDED.value},
        ).scalar()
        return Gauge(
            name="settlement_platform_fees_total",
            value=Decimal(str(result or 0)),
            help_text="Platform commission on succeeded transactions",
        )

    def _gauge_total_balance(self) -> Gauge:
        result = self._session.execute(text("SELECT COALESCE(SUM(balance), 0) FROM users")).scalar()
        return Gauge(
            name="settlement_curator_balance_total",
            value=Decimal(str(result or 0)),
            help_text="Sum of all stored curator balances",
        )

    def _gauge_in_flight_withdrawals(self) -> Gauge:
        result = self._session.execute(
            text("SELECT COALESCE(SUM(amount), 0) FROM withdrawals WHERE status IN ('pending', 'processing')")
        ).scalar()
        return Gauge(
            name="settlement_withdrawals_in_flight_amount",
            value=Decimal(str(result or 0)),
            help_text="Amount held by pending and processing withdrawals",
        )

    def _gauge_negative_balances(self) -> Gauge:
        """Count users with negative balance (should be 0)."""
        result = self._session.execute(text("SELECT COUNT(*) FROM users WHERE balance < 0")).scalar()
        return Gauge(
            name="settlement_negative_balances",
            value=result or 0,
            help_text="Users with negative balance (ALERT if > 0)",
        )

    def _gauge_open_reconciliations(self) -> Gauge:
        result = self._session.execute(
            text("SELECT COUNT(*) FROM credit_reconciliations WHERE status = 'open'")
        ).scalar()
        return Gauge(
            name="settlement_open_reconciliations",
            value=result or 0,
            help_text="Confirmed payments awaiting a manual balance credit",
        )

    def _gauge_stale_pending(self) -> Gauge:
        result = self._session.execute(
            text("SELECT COUNT(*) FROM transactions WHERE status = 'pending' AND created_at < :cutoff").bindparams(
                bindparam("cutoff", type_=DateTime(timezone=True))
            ),
            {"cutoff": utcnow() - STALE_PENDING_AFTER},
        ).scalar()
        return Gauge(
            name="settlement_stale_pending_transactions",
            value=result or 0,
            help_text="Transactions pending > 24h (never approved by the payer)",
        )


@dataclass
class DailyHealthSummary:
    """Daily health summary for operators."""

    date: str
    negative_balance_count: int
    open_reconciliations: int
    stale_pending_transactions: int
    failed_withdrawals: int
    alerts: list[str]


def generate_daily_health_summary(session: Session) -> DailyHealthSummary:
    metrics = SettlementMetricsCollector(session).collect()

    alerts = []
    if metrics.negative_balances.value > 0:
        alerts.append(f"CRITICAL: {metrics.negative_balances.value} users have negative balance")
    if metrics.open_reconciliations.value > 0:
        alerts.append(f"WARNING: {metrics.open_reconciliations.value} confirmed payments were not credited")
    if metrics.stale_pending_transactions.value > 0:
        alerts.append(f"INFO: {metrics.stale_pending_transactions.value} transactions pending > 24h")

    failed = next(
        (c.value for c in metrics.withdrawals_by_status if c.labels["status"] == WithdrawalStatus.FAILED.value),
        0,
    )

    return DailyHealthSummary(
        date=utcnow().date().isoformat(),
        negative_balance_count=int(metrics.negative_balances.value),
        open_reconciliations=int(metrics.open_reconciliations.value),
        stale_pending_transactions=int(metrics.stale_pending_transactions.value),
        failed_withdrawals=int(failed),
        alerts=alerts,
    )
