"""Base protocol and types for payment provider gateways.

All provider adapters must implement the PaymentGateway protocol. Amounts
cross this boundary as integer minor units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class CreatedPayment:
    """Result of creating a hosted-checkout payment."""

    id: str
    approval_url: str | None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecutedPayment:
    """Result of executing a payment the payer approved."""

    id: str
    state: str  # approved/failed/created/...
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def approved(self) -> bool:
        return self.state == "approved"


@dataclass(frozen=True)
class PayoutBatch:
    """Result of submitting a payout batch."""

    batch_id: str
    batch_status: str = ""
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    """Protocol for payment provider gateways.

    Pure request/response. No local state beyond credentials. Every call is a
    blocking I/O boundary and must honour the configured request timeout.
    Failures raise ProviderAuthError or ProviderRequestError; nothing is
    retried automatically.
    """

    provider_name: str

    def get_access_token(self) -> str:
        """Exchange client credentials for a bearer token."""
        ...

    def create_payment(
        self,
        amount_minor: int,
        currency: str,
        description: str,
        return_url: str,
        cancel_url: str,
    ) -> CreatedPayment:
        """Create a payment the payer approves on the provider's hosted page."""
        ...

    def execute_payment(self, payment_id: str, payer_id: str) -> ExecutedPayment:
        """Capture a payment the payer approved."""
        ...

    def get_payment(self, payment_id: str) -> dict[str, Any]:
        """Fetch the provider's view of a payment."""
        ...

    def create_payout(
        self,
        recipient: str,
        amount_minor: int,
        currency: str,
        note: str,
    ) -> PayoutBatch:
        """Send money to a recipient address (email)."""
        ...


def approval_link(payment: dict[str, Any]) -> str | None:
    """The ``approval_url`` HATEOAS link of a provider payment, if present."""
    return next(
        (link.get("href") for link in payment.get("links", []) if link.get("rel") == "approval_url"),
        None,
    )
