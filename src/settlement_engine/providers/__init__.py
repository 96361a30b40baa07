"""Payment provider gateways."""

from settlement_engine.providers.base import (
    CreatedPayment,
    ExecutedPayment,
    approval_link,
    PaymentGateway,
    PayoutBatch,
)
from settlement_engine.providers.paypal import PayPalGateway
from settlement_engine.providers.sandbox import SandboxGateway

__all__ = [
    "PaymentGateway",
    "CreatedPayment",
    "ExecutedPayment",
    "PayoutBatch",
    "approval_link",
    "PayPalGateway",
    "SandboxGateway",
]
