"""Tests for settlement domain events and the emitter."""

import json
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_engine.events import (
    BalanceCredited,
    CreditReconciliationRequired,
    EventCategory,
    EventEmitter,
    EventMetadata,
    PaymentConfirmed,
    PaymentInitiated,
    RecordingHandler,
    WithdrawalCompleted,
    WithdrawalRequested,
)


def payment_initiated() -> PaymentInitiated:
    return PaymentInitiated(
        metadata=EventMetadata.create(),
        transaction_id=uuid4(),
        submission_id=uuid4(),
        provider_payment_id="PAYID-TEST",
        amount_total=Decimal("10.00"),
        platform_fee=Decimal("0.50"),
        creator_payout_amount=Decimal("9.50"),
        currency="USD",
        is_free_submission=False,
    )


def balance_credited() -> BalanceCredited:
    return BalanceCredited(
        metadata=EventMetadata.create(),
        user_id=uuid4(),
        transaction_id=uuid4(),
        amount=Decimal("9.50"),
        new_balance=Decimal("9.50"),
        currency="USD",
    )


def withdrawal_requested() -> WithdrawalRequested:
    return WithdrawalRequested(
        metadata=EventMetadata.create(),
        withdrawal_id=uuid4(),
        user_id=uuid4(),
        amount=Decimal("20.00"),
        currency="USD",
    )


class TestEventTypes:
    """Event payloads and serialization."""

    def test_event_type_and_category(self):
        event = payment_initiated()

        assert event.event_type == "PaymentInitiated"
        assert event.category == EventCategory.PAYMENT
        assert balance_credited().category == EventCategory.BALANCE
        assert withdrawal_requested().category == EventCategory.WITHDRAWAL

    def test_reconciliation_category(self):
        event = CreditReconciliationRequired(
            metadata=EventMetadata.create(),
            reconciliation_id=uuid4(),
            transaction_id=uuid4(),
            user_id=uuid4(),
            amount=Decimal("9.50"),
        )
        assert event.category == EventCategory.RECONCILIATION

    def test_events_are_immutable(self):
        event = payment_initiated()
        with pytest.raises(AttributeError):
            event.amount_total = Decimal("0")  # type: ignore[misc]

    def test_to_dict(self):
        event = payment_initiated()

        data = event.to_dict()

        assert data["event_type"] == "PaymentInitiated"
        assert data["category"] == "payment"
        assert data["amount_total"] == "10.00"
        assert data["transaction_id"] == str(event.transaction_id)
        assert data["metadata"]["source_service"] == "settlement"
        assert data["metadata"]["actor_type"] == "system"

    def test_to_json_round_trips_through_json(self):
        event = balance_credited()

        parsed = json.loads(event.to_json())

        assert parsed["new_balance"] == "9.50"
        assert parsed["metadata"]["event_id"] == str(event.metadata.event_id)

    def test_metadata_generates_correlation_id(self):
        first = EventMetadata.create()
        second = EventMetadata.create()
        assert first.correlation_id != second.correlation_id

        correlation_id = uuid4()
        assert EventMetadata.create(correlation_id=correlation_id).correlation_id == correlation_id


class TestEventEmitter:
    """Handler routing and isolation."""

    def test_handler_by_type(self):
        emitter = EventEmitter()
        received = []
        emitter.on(PaymentInitiated, received.append)

        emitter.emit(payment_initiated())
        emitter.emit(balance_credited())

        assert [e.event_type for e in received] == ["PaymentInitiated"]

    def test_handler_for_several_types(self):
        emitter = EventEmitter()
        received = []
        emitter.on([PaymentInitiated, BalanceCredited], received.append)

        emitter.emit(payment_initiated())
        emitter.emit(balance_credited())
        emitter.emit(withdrawal_requested())

        assert len(received) == 2

    def test_handler_by_category(self):
        emitter = EventEmitter()
        received = []
        emitter.on_category(EventCategory.WITHDRAWAL, received.append)

        emitter.emit(payment_initiated())
        emitter.emit(withdrawal_requested())

        assert [e.event_type for e in received] == ["WithdrawalRequested"]

    def test_failing_handler_is_isolated(self):
        emitter = EventEmitter()
        recorder = RecordingHandler()

        def broken(event):
            raise RuntimeError("mail server down")

        emitter.on_all(broken)
        emitter.on_all(recorder)

        failures = emitter.emit(payment_initiated())

        assert len(failures) == 1
        assert isinstance(failures[0].error, RuntimeError)
        assert failures[0].handler is broken
        assert len(recorder.events) == 1

    def test_off(self):
        emitter = EventEmitter()
        recorder = RecordingHandler()
        emitter.on_all(recorder)
        emitter.off(recorder)

        emitter.emit(payment_initiated())

        assert recorder.events == []

    def test_recording_handler_of_type(self):
        recorder = RecordingHandler()
        recorder(payment_initiated())
        recorder(balance_credited())

        assert len(recorder.of_type(BalanceCredited)) == 1
        assert recorder.of_type(WithdrawalCompleted) == []
        assert recorder.of_type(PaymentConfirmed) == []

        recorder.clear()
        assert recorder.events == []

