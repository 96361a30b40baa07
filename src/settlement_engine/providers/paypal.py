"""PayPal REST gateway.

Uses the v1 payments API (hosted checkout with ``intent=sale``) and the v1
payouts API. Minor units are converted to PayPal's decimal strings here and
nowhere else.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx

from settlement_engine.config import Settings
from settlement_engine.errors import PayoutOutcomeUnknown, ProviderAuthError, ProviderRequestError
from settlement_engine.money import format_minor_units
from settlement_engine.providers.base import CreatedPayment, ExecutedPayment, PayoutBatch, approval_link

logger = logging.getLogger(__name__)


class PayPalGateway:
    """PayPal payment gateway over httpx.

    The access token is fetched per call; callers may call repeatedly.
    """

    provider_name = "paypal"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.Client(timeout=timeout)

        if not client_id or not client_secret:
            logger.warning("PayPal credentials are missing - PayPal payments will not work")

    @classmethod
    def from_settings(cls, settings: Settings) -> PayPalGateway:
        """Build a gateway from application settings."""
        return cls(
            settings.paypal_client_id,
            settings.paypal_client_secret,
            settings.paypal_base_url,
            timeout=settings.provider_timeout_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def get_access_token(self) -> str:
        """Client-credentials grant."""
        try:
            response = self._client.post(
                f"{self.base_url}/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error("Failed to reach PayPal for access token: %s", e)
            raise ProviderAuthError("Failed to authenticate with PayPal: provider unreachable") from e

        if response.status_code != 200:
            logger.error("Failed to get PayPal access token: %s", _safe_json(response))
            raise ProviderAuthError("Failed to authenticate with PayPal")

        token = _safe_json(response).get("access_token")
        if not token:
            raise ProviderAuthError("PayPal token response did not include an access token")
        return token

    def create_payment(
        self,
        amount_minor: int,
        currency: str,
        description: str,
        return_url: str,
        cancel_url: str,
    ) -> CreatedPayment:
        payment_data = {
            "intent": "sale",
            "payer": {"payment_method": "paypal"},
            "transactions": [
                {
                    "amount": {"total": format_minor_units(amount_minor), "currency": currency},
                    "description": description,
                }
            ],
            "redirect_urls": {"return_url": return_url, "cancel_url": cancel_url},
        }
        data = self._request("POST", "/v1/payments/payment", json=payment_data)

        approval_url = approval_link(data)
        logger.info("PayPal payment created with ID: %s", data.get("id"))
        return CreatedPayment(id=data["id"], approval_url=approval_url, raw=data)

    def execute_payment(self, payment_id: str, payer_id: str) -> ExecutedPayment:
        data = self._request(
            "POST",
            f"/v1/payments/payment/{payment_id}/execute",
            json={"payer_id": payer_id},
        )
        logger.info("PayPal payment executed: %s (state=%s)", payment_id, data.get("state"))
        return ExecutedPayment(id=data.get("id", payment_id), state=data.get("state", ""), raw=data)

    def get_payment(self, payment_id: str) -> dict[str, Any]:
        return self._request("GET", f"/v1/payments/payment/{payment_id}")

    def create_payout(
        self,
        recipient: str,
        amount_minor: int,
        currency: str,
        note: str,
    ) -> PayoutBatch:
        batch_ref = uuid.uuid4().hex
        payout_data = {
            "sender_batch_header": {
                "sender_batch_id": f"batch_{batch_ref}",
                "email_subject": "You have a payout!",
                "email_message": note,
            },
            "items": [
                {
                    "recipient_type": "EMAIL",
                    "amount": {"value": format_minor_units(amount_minor), "currency": currency},
                    "note": note,
                    "sender_item_id": f"item_{batch_ref}",
                    "receiver": recipient,
                }
            ],
        }
        data = self._request("POST", "/v1/payments/payouts", json=payout_data)

        header = data.get("batch_header", {})
        batch_id = header.get("payout_batch_id")
        if not batch_id:
            raise PayoutOutcomeUnknown("PayPal payout response missing payout_batch_id", payload=data)
        logger.info("PayPal payout created: %s", batch_id)
        return PayoutBatch(batch_id=batch_id, batch_status=header.get("batch_status", ""), raw=data)

    def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        """Authenticated request; non-2xx becomes ProviderRequestError."""
        token = self.get_access_token()
        try:
            response = self._client.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.TimeoutException as e:
            logger.error("PayPal %s %s timed out", method, path)
            raise ProviderRequestError(f"PayPal request timed out: {path}", error_code="TIMEOUT") from e
        except httpx.HTTPError as e:
            logger.error("PayPal %s %s failed: %s", method, path, e)
            raise ProviderRequestError(f"PayPal request failed: {e}", error_code="NETWORK_ERROR") from e

        data = _safe_json(response)
        if not response.is_success:
            error_code = data.get("name") or data.get("error")
            message = data.get("message") or data.get("error_description") or response.reason_phrase
            logger.error("PayPal %s %s returned %s: %s", method, path, response.status_code, data)
            raise ProviderRequestError(
                f"PayPal error {response.status_code}: {message}",
                error_code=error_code,
                status_code=response.status_code,
                payload=data,
            )
        return data


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
