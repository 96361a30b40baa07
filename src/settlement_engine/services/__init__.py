"""Settlement services."""

from settlement_engine.services.balance_ledger import (
    AvailableBalance,
    BalanceLedger,
    ReconciliationSnapshot,
)
from settlement_engine.services.collaborators import (
    DbSubmissionLookup,
    LinkedAccountPayoutResolver,
    PayoutAccountResolver,
    SubmissionLookup,
    SubmissionView,
)
from settlement_engine.services.settlement import BalanceSummary, SettlementService
from settlement_engine.services.state_machine import (
    TransactionStateMachine,
    TransactionStatus,
    WithdrawalStateMachine,
    WithdrawalStatus,
)
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

__all__ = [
    # Facade
    "SettlementService",
    "BalanceSummary",
    # Ledger
    "BalanceLedger",
    "AvailableBalance",
    "ReconciliationSnapshot",
    # Managers
    "TransactionManager",
    "InitiateResult",
    "ConfirmResult",
    "EarningsStats",
    "TransactionPage",
    "WithdrawalManager",
    "WithdrawalResult",
    "WithdrawalPage",
    # State machines
    "TransactionStatus",
    "TransactionStateMachine",
    "WithdrawalStatus",
    "WithdrawalStateMachine",
    # Collaborators
    "SubmissionLookup",
    "SubmissionView",
    "PayoutAccountResolver",
    "DbSubmissionLookup",
    "LinkedAccountPayoutResolver",
]
