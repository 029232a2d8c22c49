import pytest
from datetime import datetime, timezone
from typing import Iterable, Optional
from unittest.mock import Mock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from expiry_notifier.db.models import (
    Base,
    DeviceToken,
    Extinguisher,
    User,
)
from expiry_notifier.providers.asset_repository import SqlAssetRepository
from expiry_notifier.providers.user_directory import SqlUserDirectory
from expiry_notifier.schemas.notification_schemas import PushDeliveryReport
from expiry_notifier.services.notifications.batcher import DispatchBatcher
from expiry_notifier.services.notifications.mail_queue_writer import (
    SqlMailQueueWriter,
)
from expiry_notifier.services.notifications.recipient_resolver import RecipientResolver
from expiry_notifier.services.notifications.state_tracker import (
    NotificationStateTracker,
)
from expiry_notifier.services.notifications.sweep_service import SweepService
from expiry_notifier.utils.datetime_utils import to_naive_utc


# Fixed clock for every sweep in the suite
NOW = datetime(2026, 10, 19, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def test_engine(tmp_path):
    """File-backed SQLite so worker threads each get their own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'notifier.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> sessionmaker:
    return sessionmaker(bind=test_engine, class_=Session, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    with session_factory() as session:
        yield session


# Test data factories
@pytest.fixture
def add_user(db_session):
    def _add_user(
        user_id: str,
        email: Optional[str] = None,
        username: Optional[str] = None,
        tokens: Iterable[str] = (),
    ) -> User:
        user = User(user_id=user_id, email=email, username=username)
        user.device_tokens = [DeviceToken(token=token) for token in tokens]
        db_session.add(user)
        db_session.commit()
        return user

    return _add_user


@pytest.fixture
def add_extinguisher(db_session):
    def _add_extinguisher(
        asset_id: str,
        expiry: datetime,
        name: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Extinguisher:
        extinguisher = Extinguisher(
            id=asset_id, name=name, expiry=to_naive_utc(expiry), user_id=user_id
        )
        db_session.add(extinguisher)
        db_session.commit()
        return extinguisher

    return _add_extinguisher


@pytest.fixture
def tracker(session_factory) -> NotificationStateTracker:
    return NotificationStateTracker(session_factory)


@pytest.fixture
def push_sender():
    """Push sender double that accepts every token."""
    sender = Mock()
    sender.send.side_effect = lambda batch: PushDeliveryReport(
        succeeded=list(batch.tokens)
    )
    return sender


@pytest.fixture
def make_service(session_factory, tracker, push_sender):
    """Build a SweepService over the test database with overridable parts."""

    def _make_service(**overrides) -> SweepService:
        parts = dict(
            repository=SqlAssetRepository(session_factory),
            resolver=RecipientResolver(SqlUserDirectory(session_factory)),
            tracker=tracker,
            batcher=DispatchBatcher(),
            push_sender=push_sender,
            mail_writer=SqlMailQueueWriter(session_factory),
            max_workers=4,
            lock=None,
        )
        parts.update(overrides)
        return SweepService(**parts)

    return _make_service

