"""Settlement domain events package.

This package provides:
- Typed domain events for payment, balance and withdrawal operations
- Event emitter for publishing events to isolated handlers
"""

from settlement_engine.events.emitter import (
    EventEmitter,
    EventHandler,
    HandlerFailure,
    RecordingHandler,
)
from settlement_engine.events.types import (
    BalanceCredited,
    CreditReconciliationRequired,
    DomainEvent,
    EventCategory,
    EventMetadata,
    PaymentConfirmed,
    PaymentInitiated,
    PaymentRejected,
    WithdrawalCompleted,
    WithdrawalFailed,
    WithdrawalRequested,
)

__all__ = [
    # Base
    "DomainEvent",
    "EventMetadata",
    "EventCategory",
    # Payment Events
    "PaymentInitiated",
    "PaymentConfirmed",
    "PaymentRejected",
    # Balance Events
    "BalanceCredited",
    "CreditReconciliationRequired",
    # Withdrawal Events
    "WithdrawalRequested",
    "WithdrawalCompleted",
    "WithdrawalFailed",
    # Emitter
    "EventEmitter",
    "EventHandler",
    "HandlerFailure",
    "RecordingHandler",
]
