"""Sandbox payment gateway for local development and testing.

Keeps payments and payouts in memory. Replace with PayPalGateway for
production.
"""

from __future__ import annotations

import uuid
from typing import Any

from settlement_engine.errors import ProviderRequestError
from settlement_engine.money import format_minor_units
from settlement_engine.providers.base import CreatedPayment, ExecutedPayment, PayoutBatch


class SandboxGateway:
    """In-memory provider.

    Payments are created in ``created`` state with a fake approval URL.
    Executing a payment moves it to ``approved`` (or to the state set with
    ``set_execution_state``). Executing twice fails like the real provider.
    """

    provider_name = "sandbox"

    def __init__(self) -> None:
        self.payments: dict[str, dict[str, Any]] = {}
        self.payouts: list[dict[str, Any]] = []
        self.token_requests = 0
        self._failures: dict[str, ProviderRequestError] = {}
        self._execution_states: dict[str, str] = {}

    def get_access_token(self) -> str:
        self.token_requests += 1
        return f"SANDBOX-TOKEN-{uuid.uuid4().hex[:12]}"

    def create_payment(
        self,
        amount_minor: int,
        currency: str,
        description: str,
        return_url: str,
        cancel_url: str,
    ) -> CreatedPayment:
        self._raise_if_failing("create_payment")
        self.get_access_token()

        payment_id = f"PAYID-SANDBOX{uuid.uuid4().hex[:16].upper()}"
        approval_url = f"https://sandbox.local/checkout?token={payment_id}"
        raw = {
            "id": payment_id,
            "state": "created",
            "transactions": [
                {
                    "amount": {"total": format_minor_units(amount_minor), "currency": currency},
                    "description": description,
                }
            ],
            "redirect_urls": {"return_url": return_url, "cancel_url": cancel_url},
            "links": [{"rel": "approval_url", "href": approval_url}],
        }
        self.payments[payment_id] = raw
        return CreatedPayment(id=payment_id, approval_url=approval_url, raw=raw)

    def execute_payment(self, payment_id: str, payer_id: str) -> ExecutedPayment:
        self._raise_if_failing("execute_payment")
        self.get_access_token()

        payment = self.payments.get(payment_id)
        if payment is None:
            raise ProviderRequestError(
                f"Payment {payment_id} not found",
                error_code="INVALID_RESOURCE_ID",
                status_code=404,
            )
        if payment["state"] != "created":
            raise ProviderRequestError(
                "Payment has already been done",
                error_code="PAYMENT_ALREADY_DONE",
                status_code=400,
            )

        payment["state"] = self._execution_states.get(payment_id, "approved")
        payment["payer"] = {"payer_info": {"payer_id": payer_id}}
        return ExecutedPayment(id=payment_id, state=payment["state"], raw=dict(payment))

    def get_payment(self, payment_id: str) -> dict[str, Any]:
        self._raise_if_failing("get_payment")
        self.get_access_token()

        if payment_id not in self.payments:
            raise ProviderRequestError(
                f"Payment {payment_id} not found",
                error_code="INVALID_RESOURCE_ID",
                status_code=404,
            )
        return dict(self.payments[payment_id])

    def create_payout(
        self,
        recipient: str,
        amount_minor: int,
        currency: str,
        note: str,
    ) -> PayoutBatch:
        self._raise_if_failing("create_payout")
        self.get_access_token()

        batch_id = f"SANDBOXBATCH{uuid.uuid4().hex[:10].upper()}"
        raw = {
            "batch_header": {
                "payout_batch_id": batch_id,
                "batch_status": "PENDING",
                "amount": {"value": format_minor_units(amount_minor), "currency": currency},
            },
            "receiver": recipient,
            "note": note,
        }
        self.payouts.append(raw)
        return PayoutBatch(batch_id=batch_id, batch_status="PENDING", raw=raw)

    def simulate_failure(
        self,
        operation: str,
        message: str = "Sandbox failure",
        error_code: str | None = "INTERNAL_SERVICE_ERROR",
        status_code: int | None = 500,
    ) -> None:
        """Make the next call to ``operation`` fail once (for testing)."""
        self._failures[operation] = ProviderRequestError(
            message, error_code=error_code, status_code=status_code
        )

    def set_execution_state(self, payment_id: str, state: str) -> None:
        """State the provider reports when ``payment_id`` is executed (for testing)."""
        self._execution_states[payment_id] = state

    def _raise_if_failing(self, operation: str) -> None:
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error
