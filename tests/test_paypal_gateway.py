"""Tests for the PayPal REST gateway over a mocked transport."""

import json

import httpx
import pytest

from settlement_engine.errors import PayoutOutcomeUnknown, ProviderAuthError, ProviderRequestError
from settlement_engine.providers.base import approval_link
from settlement_engine.providers.paypal import PayPalGateway

BASE_URL = "https://api.sandbox.paypal.com"


class FakePayPal:
    """Minimal PayPal v1 API behind httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.overrides: dict[str, httpx.Response] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/v1/oauth2/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": "A21AAF-token", "token_type": "Bearer"})

        if path in self.overrides:
            return self.overrides[path]

        if path == "/v1/payments/payment" and request.method == "POST":
            return httpx.Response(
                201,
                json={
                    "id": "PAYID-ABC123",
                    "state": "created",
                    "links": [
                        {"rel": "self", "href": f"{BASE_URL}/v1/payments/payment/PAYID-ABC123"},
                        {"rel": "approval_url", "href": "https://www.sandbox.paypal.com/checkoutnow?token=EC-1"},
                    ],
                },
            )
        if path == "/v1/payments/payment/PAYID-ABC123/execute":
            return httpx.Response(200, json={"id": "PAYID-ABC123", "state": "approved"})
        if path == "/v1/payments/payment/PAYID-ABC123":
            return httpx.Response(200, json={"id": "PAYID-ABC123", "state": "approved"})
        if path == "/v1/payments/payouts":
            return httpx.Response(
                201,
                json={"batch_header": {"payout_batch_id": "BATCH-77", "batch_status": "PENDING"}},
            )
        return httpx.Response(404, json={"name": "INVALID_RESOURCE_ID", "message": "Not found"})

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def paypal() -> FakePayPal:
    return FakePayPal()


@pytest.fixture
def client(paypal: FakePayPal) -> PayPalGateway:
    return PayPalGateway(
        "client-id",
        "client-secret",
        BASE_URL + "/",
        http_client=httpx.Client(transport=httpx.MockTransport(paypal)),
    )


class TestAccessToken:
    def test_client_credentials_grant(self, client, paypal):
        assert client.get_access_token() == "A21AAF-token"

        request = paypal.requests[0]
        assert request.method == "POST"
        assert request.headers["Authorization"].startswith("Basic ")
        assert b"grant_type=client_credentials" in request.content

    def test_rejected_credentials(self, client, paypal):
        paypal.token_status = 401

        with pytest.raises(ProviderAuthError):
            client.get_access_token()

    def test_unreachable_provider(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = PayPalGateway(
            "id", "secret", BASE_URL, http_client=httpx.Client(transport=httpx.MockTransport(refuse))
        )

        with pytest.raises(ProviderAuthError, match="unreachable"):
            gateway.get_access_token()


class TestPayments:
    def test_create_payment(self, client, paypal):
        payment = client.create_payment(
            1000, "USD", 'Song submission: "Paper Planes"', "https://app/return", "https://app/cancel"
        )

        assert payment.id == "PAYID-ABC123"
        assert payment.approval_url == "https://www.sandbox.paypal.com/checkoutnow?token=EC-1"

        # token request first, then the payment with a bearer token
        assert [r.url.path for r in paypal.requests] == ["/v1/oauth2/token", "/v1/payments/payment"]
        assert paypal.requests[1].headers["Authorization"] == "Bearer A21AAF-token"
        body = paypal.body(1)
        assert body["intent"] == "sale"
        assert body["payer"] == {"payment_method": "paypal"}
        assert body["transactions"][0]["amount"] == {"total": "10.00", "currency": "USD"}
        assert body["redirect_urls"] == {"return_url": "https://app/return", "cancel_url": "https://app/cancel"}

    def test_execute_payment(self, client, paypal):
        executed = client.execute_payment("PAYID-ABC123", "PAYER-9")

        assert executed.approved is True
        assert executed.state == "approved"
        assert paypal.body(1) == {"payer_id": "PAYER-9"}

    def test_get_payment(self, client):
        assert client.get_payment("PAYID-ABC123")["state"] == "approved"

    def test_approval_link_from_created_payment(self, client):
        created = client.create_payment(1000, "USD", "Song submission", "https://r", "https://c")

        assert approval_link(created.raw) == "https://www.sandbox.paypal.com/checkoutnow?token=EC-1"
        assert approval_link({"links": [{"rel": "self", "href": "x"}]}) is None

    def test_error_response(self, client, paypal):
        paypal.overrides["/v1/payments/payment/PAYID-ABC123/execute"] = httpx.Response(
            400,
            json={"name": "PAYMENT_ALREADY_DONE", "message": "Payment has been done already for this cart."},
        )

        with pytest.raises(ProviderRequestError) as exc_info:
            client.execute_payment("PAYID-ABC123", "PAYER-9")

        error = exc_info.value
        assert error.error_code == "PAYMENT_ALREADY_DONE"
        assert error.status_code == 400
        assert error.payload["name"] == "PAYMENT_ALREADY_DONE"
        assert error.retryable is False
        assert "already" in error.message

    def test_server_error_is_retryable(self, client, paypal):
        paypal.overrides["/v1/payments/payment"] = httpx.Response(
            503, json={"name": "INTERNAL_SERVICE_ERROR", "message": "An internal service error occurred."}
        )

        with pytest.raises(ProviderRequestError) as exc_info:
            client.create_payment(500, "USD", "desc", "https://r", "https://c")

        assert exc_info.value.retryable is True
        assert exc_info.value.user_message == "Payment provider is temporarily unavailable. Please try again."

    def test_declined_instrument_needs_support(self, client, paypal):
        paypal.overrides["/v1/payments/payment/PAYID-ABC123/execute"] = httpx.Response(
            400, json={"name": "INSTRUMENT_DECLINED", "message": "The instrument was declined."}
        )

        with pytest.raises(ProviderRequestError) as exc_info:
            client.execute_payment("PAYID-ABC123", "PAYER-9")

        assert exc_info.value.user_message == "Payment could not be completed. Please contact support."

    def test_network_error(self):
        def flaky(request):
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "tok"})
            raise httpx.ConnectError("connection reset", request=request)

        gateway = PayPalGateway(
            "id", "secret", BASE_URL, http_client=httpx.Client(transport=httpx.MockTransport(flaky))
        )

        with pytest.raises(ProviderRequestError) as exc_info:
            gateway.get_payment("PAYID-ABC123")

        assert exc_info.value.error_code == "NETWORK_ERROR"
        assert exc_info.value.retryable is True

    def test_timeout(self):
        def slow(request):
            if request.url.path == "/v1/oauth2/token":
                return httpx.Response(200, json={"access_token": "tok"})
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = PayPalGateway(
            "id", "secret", BASE_URL, http_client=httpx.Client(transport=httpx.MockTransport(slow))
        )

        with pytest.raises(ProviderRequestError) as exc_info:
            gateway.get_payment("PAYID-ABC123")

        assert exc_info.value.error_code == "TIMEOUT"


class TestPayouts:
    def test_create_payout(self, client, paypal):
        batch = client.create_payout("curator@example.com", 950, "USD", "Balance withdrawal")

        assert batch.batch_id == "BATCH-77"
        assert batch.batch_status == "PENDING"
        body = paypal.body(1)
        item = body["items"][0]
        assert item["recipient_type"] == "EMAIL"
        assert item["receiver"] == "curator@example.com"
        assert item["amount"] == {"value": "9.50", "currency": "USD"}
        assert body["sender_batch_header"]["sender_batch_id"].startswith("batch_")

    def test_payout_without_batch_id(self, client, paypal):
        paypal.overrides["/v1/payments/payouts"] = httpx.Response(201, json={"batch_header": {}})

        with pytest.raises(PayoutOutcomeUnknown, match="payout_batch_id") as exc_info:
            client.create_payout("curator@example.com", 950, "USD", "note")

        # Not a rejection: the withdrawal must not be failed and released.
        assert not isinstance(exc_info.value, ProviderRequestError)
        assert exc_info.value.payload == {"batch_header": {}}

    def test_rejected_payout(self, client, paypal):
        paypal.overrides["/v1/payments/payouts"] = httpx.Response(
            422, json={"name": "INSUFFICIENT_FUNDS", "message": "Sender does not have sufficient funds."}
        )

        with pytest.raises(ProviderRequestError) as exc_info:
            client.create_payout("curator@example.com", 950, "USD", "note")

        assert exc_info.value.status_code == 422
        assert exc_info.value.retryable is False
