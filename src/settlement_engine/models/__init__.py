"""SQLAlchemy ORM models."""

from settlement_engine.models.base import Base, TimestampMixin
from settlement_engine.models.marketplace import (
    LinkedAccount,
    PaymentMethod,
    Playlist,
    Song,
    Submission,
    SubmissionStatus,
    User,
)
from settlement_engine.models.settlement import CreditReconciliation, Transaction, Withdrawal

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "Playlist",
    "Song",
    "Submission",
    "SubmissionStatus",
    "PaymentMethod",
    "LinkedAccount",
    "Transaction",
    "Withdrawal",
    "CreditReconciliation",
]
