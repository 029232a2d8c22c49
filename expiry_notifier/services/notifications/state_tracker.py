from typing import Set

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from expiry_notifier.db.models import NotificationChannel, NotificationMarker
from expiry_notifier.schemas.notification_schemas import NotificationBucket
from expiry_notifier.utils.logging import get_logger

logger = get_logger()


class NotificationStateTracker:
    """
    Durable ledger of which (asset, channel, bucket, recipient) keys were notified.

    Every call runs in its own short transaction, so marks are atomic per key
    and safe to issue from concurrent workers. ``recipient`` is the push token
    for the push channel and the user id for email.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def already_notified(
        self,
        asset_id: str,
        channel: NotificationChannel,
        bucket: NotificationBucket,
        recipient: str = "",
    ) -> bool:
        with self.session_factory() as db_session:
            result = db_session.execute(
                select(NotificationMarker.id)
                .where(
                    and_(
                        NotificationMarker.asset_id == asset_id,
                        NotificationMarker.channel == channel,
                        NotificationMarker.bucket == bucket.key,
                        NotificationMarker.recipient == recipient,
                    )
                )
                .limit(1)
            )
            return result.first() is not None

    def notified_recipients(
        self,
        asset_id: str,
        channel: NotificationChannel,
        bucket: NotificationBucket,
    ) -> Set[str]:
        """All recipients already marked for one asset, channel and bucket."""
        with self.session_factory() as db_session:
            result = db_session.execute(
                select(NotificationMarker.recipient).where(
                    and_(
                        NotificationMarker.asset_id == asset_id,
                        NotificationMarker.channel == channel,
                        NotificationMarker.bucket == bucket.key,
                    )
                )
            )
            return set(result.scalars().all())

    def mark_notified(
        self,
        asset_id: str,
        channel: NotificationChannel,
        bucket: NotificationBucket,
        recipient: str = "",
    ) -> None:
        """Record a successful dispatch. Marking an existing key is a no-op."""
        if self.already_notified(asset_id, channel, bucket, recipient):
            return

        with self.session_factory() as db_session:
            try:
                db_session.add(
                    NotificationMarker(
                        asset_id=asset_id,
                        channel=channel,
                        bucket=bucket.key,
                        recipient=recipient,
                    )
                )
                db_session.commit()
            except IntegrityError:
                # A concurrent worker marked the same key first
                db_session.rollback()

    def clear(self, asset_id: str) -> int:
        """
        Remove every marker for an asset.

        Renewing an expiry already yields a new bucket; this is for flows that
        want to re-arm notifications without changing the expiry.
        """
        with self.session_factory() as db_session:
            result = db_session.execute(
                delete(NotificationMarker).where(NotificationMarker.asset_id == asset_id)
            )
            db_session.commit()
            logger.info(
                f"Cleared {result.rowcount} notification markers for {asset_id}"
            )
            return result.rowcount
