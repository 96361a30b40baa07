"""Collaborator interfaces consumed by settlement.

Submissions and linked payout accounts are owned by other modules. Settlement
only needs a read view of a submission and a way to resolve a curator's
payout address, plus the review-status flip once a submission is paid.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from settlement_engine.errors import NotFound, PayoutAccountMissing
from settlement_engine.models import LinkedAccount, Playlist, Song, Submission, SubmissionStatus

PAYPAL_PLATFORM = "paypal"


@dataclass(frozen=True)
class SubmissionView:
    """What settlement needs to know about a submission."""

    submission_id: UUID
    artist_id: UUID
    status: str
    playlist_id: UUID
    playlist_name: str
    curator_id: UUID
    submission_fee: Decimal
    song_title: str

    @property
    def payment_description(self) -> str:
        return f'Song submission: "{self.song_title}" to playlist "{self.playlist_name}"'


class SubmissionLookup(Protocol):
    def get_submission(self, submission_id: UUID) -> SubmissionView:
        """Load a submission; NotFound if absent."""
        ...

    def mark_ready_for_review(self, submission_id: UUID) -> None:
        """Move a paid submission to pending curator review."""
        ...


class PayoutAccountResolver(Protocol):
    def get_payout_address(self, user_id: UUID) -> str:
        """Payout address (email) for a user; PayoutAccountMissing if not linked."""
        ...


class DbSubmissionLookup:
    """Submission lookup over the marketplace tables."""

    def __init__(self, db: Session):
        self.db = db

    def get_submission(self, submission_id: UUID) -> SubmissionView:
        row = self.db.execute(
            select(
                Submission.submission_id,
                Submission.artist_id,
                Submission.status,
                Playlist.playlist_id,
                Playlist.name,
                Playlist.creator_id,
                Playlist.submission_fee,
                Song.title,
            )
            .join(Playlist, Playlist.playlist_id == Submission.playlist_id)
            .join(Song, Song.song_id == Submission.song_id)
            .where(Submission.submission_id == submission_id)
        ).one_or_none()

        if row is None:
            raise NotFound("Submission", submission_id)

        return SubmissionView(
            submission_id=row[0],
            artist_id=row[1],
            status=row[2],
            playlist_id=row[3],
            playlist_name=row[4],
            curator_id=row[5],
            submission_fee=Decimal(str(row[6])),
            song_title=row[7],
        )

    def mark_ready_for_review(self, submission_id: UUID) -> None:
        self.db.execute(
            update(Submission)
            .where(Submission.submission_id == submission_id)
            .values(status=SubmissionStatus.PENDING.value)
            .execution_options(synchronize_session=False)
        )


class LinkedAccountPayoutResolver:
    """Resolves the PayPal email stored on a user's linked PayPal account."""

    def __init__(self, db: Session, platform: str = PAYPAL_PLATFORM):
        self.db = db
        self.platform = platform

    def get_payout_address(self, user_id: UUID) -> str:
        email = self.db.execute(
            select(LinkedAccount.external_email).where(
                LinkedAccount.user_id == user_id,
                LinkedAccount.platform == self.platform,
            )
        ).scalar_one_or_none()

        if not email:
            raise PayoutAccountMissing(user_id)
        return email
