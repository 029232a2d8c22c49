from datetime import timedelta
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import sessionmaker

from expiry_notifier.config.settings import Settings
from expiry_notifier.db.firebase import get_firebase_app, get_firestore_client
from expiry_notifier.db.models import NotificationChannel
from expiry_notifier.db.session import get_session_factory
from expiry_notifier.providers.asset_repository import (
    FirestoreAssetRepository,
    SqlAssetRepository,
)
from expiry_notifier.providers.user_directory import (
    FirestoreUserDirectory,
    SqlUserDirectory,
)
from expiry_notifier.services.notifications.batcher import DispatchBatcher
from expiry_notifier.services.notifications.mail_queue_writer import (
    FirestoreMailQueueWriter,
    SqlMailQueueWriter,
)
from expiry_notifier.services.notifications.push_sender import PushSender
from expiry_notifier.services.notifications.recipient_resolver import RecipientResolver
from expiry_notifier.services.notifications.state_tracker import (
    NotificationStateTracker,
)
from expiry_notifier.services.notifications.sweep_service import SweepService, SweepType
from expiry_notifier.utils.errors import ConfigurationError
from expiry_notifier.utils.locks import SweepLock

STORE_BACKENDS = ("sql", "firestore")


def parse_channels(values: List[str]) -> List[NotificationChannel]:
    """
    Raises:
        ConfigurationError: A channel name is not "push" or "email"
    """
    channels = []
    for value in values:
        try:
            channel = NotificationChannel(value.strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown notification channel: {value!r}")
        if channel not in channels:
            channels.append(channel)
    return channels


def sweep_plan(
    settings: Settings, sweep_type: SweepType
) -> Tuple[List[NotificationChannel], timedelta]:
    """Channels and lookahead window configured for a sweep type."""
    if sweep_type is SweepType.EXPIRED:
        return parse_channels(settings.EXPIRED_SWEEP_CHANNELS), timedelta(0)

    if settings.EXPIRING_SOON_WINDOW_MINUTES < 0:
        raise ConfigurationError("EXPIRING_SOON_WINDOW_MINUTES must not be negative")
    return (
        parse_channels(settings.EXPIRING_SOON_SWEEP_CHANNELS),
        timedelta(minutes=settings.EXPIRING_SOON_WINDOW_MINUTES),
    )


def validate_store_settings(settings: Settings) -> None:
    """
    Raises:
        ConfigurationError: STORE_BACKEND or DISPLAY_TIMEZONE is unknown
    """
    if settings.STORE_BACKEND not in STORE_BACKENDS:
        raise ConfigurationError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")

    try:
        ZoneInfo(settings.DISPLAY_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(f"Unknown DISPLAY_TIMEZONE: {settings.DISPLAY_TIMEZONE!r}")


def build_sweep_service(
    settings: Settings,
    channels: List[NotificationChannel],
    session_factory: Optional[sessionmaker] = None,
) -> SweepService:
    """
    Wire a SweepService from settings.

    The SQL session factory is always needed for the state tracker; the
    record store, user directory and mail queue follow STORE_BACKEND. Only
    the senders for ``channels`` are built, so Firebase credentials are
    required only when push is enabled or the store is Firestore.
    """
    validate_store_settings(settings)

    if session_factory is None:
        session_factory = get_session_factory()

    if settings.STORE_BACKEND == "firestore":
        client = get_firestore_client()
        repository = FirestoreAssetRepository(client, settings.FIRESTORE_ASSET_COLLECTION)
        user_directory = FirestoreUserDirectory(client, settings.FIRESTORE_USER_COLLECTION)
        mail_writer = FirestoreMailQueueWriter(client, settings.FIRESTORE_MAIL_COLLECTION)
    else:
        repository = SqlAssetRepository(session_factory)
        user_directory = SqlUserDirectory(session_factory)
        mail_writer = SqlMailQueueWriter(session_factory)

    push_sender = None
    if NotificationChannel.PUSH in channels:
        push_sender = PushSender(get_firebase_app(), settings.PUSH_BATCH_SIZE)

    lock = None
    if settings.SWEEP_LOCK_ENABLED:
        lock = SweepLock.from_url(settings.redis_url, settings.SWEEP_LOCK_TIMEOUT_SECONDS)

    return SweepService(
        repository=repository,
        resolver=RecipientResolver(user_directory),
        tracker=NotificationStateTracker(session_factory),
        batcher=DispatchBatcher(
            default_asset_name=settings.DEFAULT_ASSET_NAME,
            default_salutation=settings.DEFAULT_SALUTATION,
            display_timezone=settings.DISPLAY_TIMEZONE,
        ),
        push_sender=push_sender,
        mail_writer=mail_writer if NotificationChannel.EMAIL in channels else None,
        max_workers=settings.SWEEP_MAX_WORKERS,
        lock=lock,
    )
