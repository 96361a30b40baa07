"""Transaction and withdrawal state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from settlement_engine.errors import InvalidTransitionError


class TransactionStatus(str, Enum):
    """Transaction status values."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WithdrawalStatus(str, Enum):
    """Withdrawal status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Withdrawals whose amount is still held against the balance.
IN_FLIGHT_WITHDRAWAL_STATUSES = (WithdrawalStatus.PENDING.value, WithdrawalStatus.PROCESSING.value)


class TransactionStateMachine:
    """State machine for transaction status transitions.

    Allowed transitions:
    - pending → succeeded
    - pending → failed

    Both terminal states are final.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        TransactionStatus.PENDING.value: [TransactionStatus.SUCCEEDED.value, TransactionStatus.FAILED.value],
        TransactionStatus.SUCCEEDED.value: [],
        TransactionStatus.FAILED.value: [],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)


class WithdrawalStateMachine:
    """State machine for withdrawal status transitions.

    Allowed transitions:
    - pending → processing (provider accepted the payout batch)
    - pending → failed (provider rejected the payout)
    - processing → completed
    - processing → failed
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        WithdrawalStatus.PENDING.value: [WithdrawalStatus.PROCESSING.value, WithdrawalStatus.FAILED.value],
        WithdrawalStatus.PROCESSING.value: [WithdrawalStatus.COMPLETED.value, WithdrawalStatus.FAILED.value],
        WithdrawalStatus.COMPLETED.value: [],
        WithdrawalStatus.FAILED.value: [],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)

    @classmethod
    def holds_balance(cls, status: str) -> bool:
        """Whether a withdrawal in this status reduces the available balance."""
        return status in IN_FLIGHT_WITHDRAWAL_STATUSES
