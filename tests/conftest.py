"""Pytest fixtures for settlement engine tests."""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy import Engine, create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.config import SettlementConfig
from settlement_engine.events.emitter import EventEmitter, RecordingHandler
from settlement_engine.models import (
    Base,
    LinkedAccount,
    PaymentMethod,
    Playlist,
    Song,
    Submission,
    Transaction,
    User,
    Withdrawal,
)
from settlement_engine.providers.sandbox import SandboxGateway
from settlement_engine.services.balance_ledger import BalanceLedger
from settlement_engine.services.collaborators import (
    DbSubmissionLookup,
    LinkedAccountPayoutResolver,
)
from settlement_engine.services.settlement import SettlementService
from settlement_engine.services.transaction_manager import TransactionManager
from settlement_engine.services.withdrawal_manager import WithdrawalManager


# File-backed SQLite so several sessions can see each other's commits.
@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    """Create test database engine."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'settlement_test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, class_=Session, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Get a database session for each test."""
    with session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def config() -> SettlementConfig:
    return SettlementConfig()


@pytest.fixture
def gateway() -> SandboxGateway:
    return SandboxGateway()


@pytest.fixture
def ledger(db: Session) -> BalanceLedger:
    return BalanceLedger(db)


@pytest.fixture
def transaction_manager(
    db: Session, gateway: SandboxGateway, ledger: BalanceLedger, config: SettlementConfig
) -> TransactionManager:
    return TransactionManager(
        db, gateway, ledger, DbSubmissionLookup(db), LinkedAccountPayoutResolver(db), config
    )


@pytest.fixture
def withdrawal_manager(
    db: Session, gateway: SandboxGateway, ledger: BalanceLedger, config: SettlementConfig
) -> WithdrawalManager:
    return WithdrawalManager(db, gateway, ledger, LinkedAccountPayoutResolver(db), config)


@pytest.fixture
def recorder() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def emitter(recorder: RecordingHandler) -> EventEmitter:
    emitter = EventEmitter()
    emitter.on_all(recorder)
    return emitter


@pytest.fixture
def settlement(
    db: Session, gateway: SandboxGateway, config: SettlementConfig, emitter: EventEmitter
) -> SettlementService:
    return SettlementService(db, gateway, config, event_emitter=emitter)


@pytest.fixture
def test_data(db: Session) -> SettlementTestData:
    return SettlementTestData(db)


# Test data generators
@dataclass(frozen=True)
class SubmissionRefs:
    """IDs of a seeded submission and the users around it."""

    submission_id: UUID
    artist_id: UUID
    curator_id: UUID
    playlist_id: UUID
    payment_method_id: UUID


class SettlementTestData:
    """Test data generator for settlement tests. Every helper commits."""

    def __init__(self, db: Session):
        self.db = db

    def create_user(self, role: str = "artist", balance: Decimal = Decimal("0.00")) -> User:
        suffix = uuid4().hex[:10]
        user = User(
            user_id=uuid4(),
            username=f"{role}_{suffix}",
            email=f"{role}_{suffix}@example.com",
            role=role,
            balance=balance,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def link_paypal(self, user_id: UUID, email: str | None = None) -> LinkedAccount:
        account = LinkedAccount(
            user_id=user_id,
            platform="paypal",
            external_user_id=f"PP-{uuid4().hex[:12]}",
            external_email=email or f"payout_{uuid4().hex[:8]}@example.com",
        )
        self.db.add(account)
        self.db.commit()
        return account

    def create_curator(self, balance: Decimal = Decimal("0.00"), linked: bool = True) -> User:
        curator = self.create_user(role="curator", balance=balance)
        if linked:
            self.link_paypal(curator.user_id)
        return curator

    def create_payment_method(self, user_id: UUID) -> PaymentMethod:
        method = PaymentMethod(payment_method_id=uuid4(), user_id=user_id, type="paypal")
        self.db.add(method)
        self.db.commit()
        return method

    def create_submission(
        self,
        fee: Decimal = Decimal("10.00"),
        curator: User | None = None,
        curator_linked: bool = True,
    ) -> SubmissionRefs:
        """Artist, curator playlist with ``fee``, song and an unpaid submission."""
        curator = curator or self.create_curator(linked=curator_linked)
        artist = self.create_user(role="artist")
        method = self.create_payment_method(artist.user_id)

        playlist = Playlist(
            playlist_id=uuid4(),
            creator_id=curator.user_id,
            name="Late Night Indie",
            submission_fee=fee,
        )
        song = Song(song_id=uuid4(), artist_id=artist.user_id, title="Paper Planes")
        self.db.add_all([playlist, song])
        self.db.flush()

        submission = Submission(
            submission_id=uuid4(),
            artist_id=artist.user_id,
            playlist_id=playlist.playlist_id,
            song_id=song.song_id,
        )
        self.db.add(submission)
        self.db.commit()

        return SubmissionRefs(
            submission_id=submission.submission_id,
            artist_id=artist.user_id,
            curator_id=curator.user_id,
            playlist_id=playlist.playlist_id,
            payment_method_id=method.payment_method_id,
        )

    def add_withdrawal(self, user_id: UUID, amount: Decimal, status: str = "pending") -> Withdrawal:
        """Insert a withdrawal row directly, bypassing the manager."""
        withdrawal = Withdrawal(withdrawal_id=uuid4(), user_id=user_id, amount=amount, status=status)
        self.db.add(withdrawal)
        self.db.commit()
        return withdrawal

    def submission_status(self, submission_id: UUID) -> str:
        return self.db.execute(
            select(Submission.status).where(Submission.submission_id == submission_id)
        ).scalar_one()

    def count_transactions(self) -> int:
        return self.db.scalar(select(func.count()).select_from(Transaction)) or 0

    def count_withdrawals(self, user_id: UUID) -> int:
        return self.db.scalar(
            select(func.count()).select_from(Withdrawal).where(Withdrawal.user_id == user_id)
        ) or 0
