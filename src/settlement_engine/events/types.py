"""Settlement events.

Each event records something that has already been committed: a payment
created or confirmed, a curator credited, a payout attempted. Events feed
notifications and support tooling and never change settlement state.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from functools import singledispatch
from typing import Any, ClassVar
from uuid import UUID, uuid4

from settlement_engine.models.base import utcnow


class EventCategory(str, Enum):
    PAYMENT = "payment"
    BALANCE = "balance"
    WITHDRAWAL = "withdrawal"
    RECONCILIATION = "reconciliation"


@dataclass(frozen=True)
class EventMetadata:
    """Identity and provenance shared by all events of one settlement request."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID
    actor_id: UUID | None
    actor_type: str  # "user" or "system"
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_id: UUID | None = None,
        actor_type: str = "system",
        source_service: str = "settlement",
    ) -> EventMetadata:
        return cls(
            event_id=uuid4(),
            timestamp=utcnow(),
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base settlement event. Subclasses set ``category``."""

    category: ClassVar[EventCategory]

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        payload = _jsonable(asdict(self))
        payload["event_type"] = self.event_type
        payload["category"] = self.category.value
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@singledispatch
def _jsonable(value: Any) -> Any:
    return value


@_jsonable.register
def _(value: dict) -> dict[str, Any]:
    return {key: _jsonable(item) for key, item in value.items()}


@_jsonable.register
def _(value: list) -> list[Any]:
    return [_jsonable(item) for item in value]


@_jsonable.register(UUID)
@_jsonable.register(Decimal)
def _(value: Any) -> str:
    # Money stays a string so "9.50" keeps its scale.
    return str(value)


@_jsonable.register
def _(value: date) -> str:
    return value.isoformat()


@_jsonable.register
def _(value: Enum) -> Any:
    return value.value


@dataclass(frozen=True)
class PaymentInitiated(DomainEvent):
    """A submission payment was created with the provider, or settled free."""

    category = EventCategory.PAYMENT

    transaction_id: UUID
    submission_id: UUID
    provider_payment_id: str
    amount_total: Decimal
    platform_fee: Decimal
    creator_payout_amount: Decimal
    currency: str
    is_free_submission: bool


@dataclass(frozen=True)
class PaymentConfirmed(DomainEvent):
    category = EventCategory.PAYMENT

    transaction_id: UUID
    submission_id: UUID
    provider_payment_id: str
    provider_state: str
    curator_id: UUID


@dataclass(frozen=True)
class PaymentRejected(DomainEvent):
    """The payer executed without approval; the transaction failed."""

    category = EventCategory.PAYMENT

    transaction_id: UUID
    submission_id: UUID
    provider_payment_id: str
    provider_state: str


@dataclass(frozen=True)
class BalanceCredited(DomainEvent):
    category = EventCategory.BALANCE

    user_id: UUID
    transaction_id: UUID
    amount: Decimal
    new_balance: Decimal
    currency: str


@dataclass(frozen=True)
class CreditReconciliationRequired(DomainEvent):
    """A confirmed payment could not be credited and needs manual correction."""

    category = EventCategory.RECONCILIATION

    reconciliation_id: UUID
    transaction_id: UUID
    user_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class WithdrawalRequested(DomainEvent):
    """A payout was claimed against the balance; the provider is called next."""

    category = EventCategory.WITHDRAWAL

    withdrawal_id: UUID
    user_id: UUID
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class WithdrawalCompleted(DomainEvent):
    """The provider accepted the payout and the balance was debited."""

    category = EventCategory.WITHDRAWAL

    withdrawal_id: UUID
    user_id: UUID
    amount: Decimal
    currency: str
    payout_batch_id: str
    new_balance: Decimal


@dataclass(frozen=True)
class WithdrawalFailed(DomainEvent):
    """The provider rejected the payout; the balance is untouched."""

    category = EventCategory.WITHDRAWAL

    withdrawal_id: UUID
    user_id: UUID
    amount: Decimal
    error_message: str
