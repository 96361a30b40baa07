"""Marketplace models owned by collaborating modules.

Only the columns settlement reads or writes are mapped here: the curator's
``balance`` on User, the playlist fee, the submission review status, the
artist's payment methods, and linked payout accounts.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from settlement_engine.models.settlement import Transaction, Withdrawal


class SubmissionStatus(str, Enum):
    """Submission review status values."""

    PROCESSING = "processing"  # awaiting payment
    PENDING = "pending"  # paid, ready for curator review
    APPROVED = "approved"
    REJECTED = "rejected"


class User(TimestampMixin, Base):
    """Marketplace user. Curators accrue ``balance`` from paid submissions."""

    __tablename__ = "users"

    user_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )

    __table_args__ = (CheckConstraint("balance >= 0", name="users_balance_non_negative_ck"),)

    playlists: Mapped[list[Playlist]] = relationship(back_populates="creator")
    withdrawals: Mapped[list[Withdrawal]] = relationship(back_populates="user")
    linked_accounts: Mapped[list[LinkedAccount]] = relationship(back_populates="user")


class Playlist(TimestampMixin, Base):
    """Curator-owned playlist accepting paid submissions."""

    __tablename__ = "playlists"

    playlist_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    creator_id: Mapped[UUID] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    submission_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )

    __table_args__ = (CheckConstraint("submission_fee >= 0", name="playlists_fee_ck"),)

    creator: Mapped[User] = relationship(back_populates="playlists")


class Song(TimestampMixin, Base):
    __tablename__ = "songs"

    song_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    artist_id: Mapped[UUID] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)


class Submission(TimestampMixin, Base):
    """A song submitted by an artist to a playlist."""

    __tablename__ = "submissions"

    submission_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    artist_id: Mapped[UUID] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    playlist_id: Mapped[UUID] = mapped_column(ForeignKey("playlists.playlist_id"), nullable=False)
    song_id: Mapped[UUID] = mapped_column(ForeignKey("songs.song_id"), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=SubmissionStatus.PROCESSING.value
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('processing', 'pending', 'approved', 'rejected')",
            name="submissions_status_ck",
        ),
        Index("submissions_by_playlist", "playlist_id"),
    )

    playlist: Mapped[Playlist] = relationship()
    song: Mapped[Song] = relationship()
    transactions: Mapped[list[Transaction]] = relationship(back_populates="submission")


class PaymentMethod(TimestampMixin, Base):
    """Payment method registered by an artist."""

    __tablename__ = "payment_methods"

    payment_method_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="paypal")


class LinkedAccount(TimestampMixin, Base):
    """External account linked through OAuth; PayPal links carry the payout email."""

    __tablename__ = "linked_accounts"

    linked_account_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.user_id"), nullable=False)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    external_user_id: Mapped[str] = mapped_column(Text, nullable=False)
    external_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "platform", name="linked_accounts_user_platform_uq"),
    )

    user: Mapped[User] = relationship(back_populates="linked_accounts")
