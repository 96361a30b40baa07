"""Settlement error taxonomy.

Every error carries a stable ``code`` and the HTTP status the API adapter
maps it to. Provider errors keep the provider's own error code so callers can
tell a transient failure ("try again") from one that needs support.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID


class SettlementError(Exception):
    """Base class for all settlement errors."""

    code = "SETTLEMENT_ERROR"
    http_status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(SettlementError):
    """Input rejected before any external call."""

    code = "VALIDATION_ERROR"
    http_status = 400


class NotFound(SettlementError):
    """Unknown submission, transaction, withdrawal, or user."""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class PayoutAccountMissing(SettlementError):
    """The curator has not linked a payout account."""

    code = "PAYOUT_ACCOUNT_MISSING"
    http_status = 422

    def __init__(self, user_id: UUID | str):
        self.user_id = user_id
        super().__init__(
            f"User {user_id} has no linked payout account; link a PayPal account to receive payouts"
        )


class InsufficientBalance(SettlementError):
    """Requested withdrawal exceeds the available balance."""

    code = "INSUFFICIENT_BALANCE"
    http_status = 422

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient available balance for withdrawal: requested {requested}, available {available}"
        )


class PaymentMethodMismatch(SettlementError):
    """Payment method does not belong to the submitting artist."""

    code = "PAYMENT_METHOD_MISMATCH"
    http_status = 409


class DuplicateTransaction(SettlementError):
    """A transaction already exists for the submission."""

    code = "DUPLICATE_TRANSACTION"
    http_status = 409

    def __init__(self, submission_id: UUID | str):
        self.submission_id = submission_id
        super().__init__(
            f"Transaction already exists for submission {submission_id}. "
            "Please contact support if you believe this is an error."
        )


class AlreadyProcessed(SettlementError):
    """The transaction already reached a terminal state."""

    code = "ALREADY_PROCESSED"
    http_status = 409

    def __init__(self, transaction_id: UUID | str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(f"Transaction {transaction_id} already processed (status: {status})")


class InvalidTransitionError(SettlementError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvariantViolation(SettlementError):
    """A money invariant would be broken. Never coerced, always fatal."""

    code = "INVARIANT_VIOLATION"
    http_status = 500


class ProviderError(SettlementError):
    """Base class for payment provider failures."""

    code = "PROVIDER_ERROR"
    http_status = 502

    def __init__(self, message: str, *, operation: str | None = None):
        self.operation = operation
        super().__init__(message)

    def with_operation(self, operation: str) -> ProviderError:
        """Attach the settlement step that was running when the provider failed."""
        self.operation = operation
        self.message = f"{operation}: {self.message}"
        self.args = (self.message,)
        return self


class ProviderAuthError(ProviderError):
    """Credentials rejected or provider unreachable while authenticating."""

    code = "PROVIDER_AUTH_ERROR"


# Provider error codes the payer can fix by simply trying again later.
RETRYABLE_PROVIDER_CODES = frozenset({"RATE_LIMIT_REACHED", "INTERNAL_SERVICE_ERROR", "TIMEOUT", "NETWORK_ERROR"})

# Provider error codes that need a human to look at the account.
SUPPORT_PROVIDER_CODES = frozenset({"DUPLICATE_TRANSACTION", "DUPLICATE_REQUEST_ID", "INSTRUMENT_DECLINED", "PAYEE_ACCOUNT_RESTRICTED"})


class ProviderRequestError(ProviderError):
    """Provider returned a non-2xx response or could not be reached."""

    code = "PROVIDER_REQUEST_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
        operation: str | None = None,
    ):
        self.error_code = error_code
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message, operation=operation)

    @property
    def retryable(self) -> bool:
        """True when a new request from the end user may succeed."""
        if self.error_code in RETRYABLE_PROVIDER_CODES:
            return True
        return self.status_code is not None and (self.status_code == 429 or self.status_code >= 500)

    @property
    def user_message(self) -> str:
        """Message safe to show the payer."""
        if self.error_code in SUPPORT_PROVIDER_CODES:
            return "Payment could not be completed. Please contact support."
        if self.retryable:
            return "Payment provider is temporarily unavailable. Please try again."
        return "Payment could not be completed. Please try again or contact support."


class PayoutOutcomeUnknown(ProviderError):
    """The provider answered but the payout cannot be identified.

    The money may already be on its way, so the withdrawal is neither failed
    nor completed; it keeps its hold until an operator resolves it.
    """

    code = "PAYOUT_OUTCOME_UNKNOWN"

    def __init__(self, message: str, *, payload: dict[str, Any] | None = None):
        self.payload = payload or {}
        super().__init__(message)

    @property
    def user_message(self) -> str:
        return "Your withdrawal is being reviewed. The amount stays on hold until it is resolved."


class WithdrawalFailed(SettlementError):
    """Payout rejected by the provider; the withdrawal is marked failed."""

    code = "WITHDRAWAL_FAILED"
    http_status = 502

    def __init__(self, withdrawal_id: UUID | str, provider_message: str):
        self.withdrawal_id = withdrawal_id
        self.provider_message = provider_message
        super().__init__(f"Withdrawal failed: {provider_message}")
