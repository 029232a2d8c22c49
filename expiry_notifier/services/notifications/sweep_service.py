import asyncio
import enum
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from expiry_notifier.db.models import ExpiryCondition, NotificationChannel
from expiry_notifier.providers.asset_repository import AssetRepository
from expiry_notifier.schemas.notification_schemas import (
    AssetRecord,
    EmailMessage,
    NotificationBucket,
    PushBatch,
    ResolvedRecipients,
    ScannedAsset,
    SweepResult,
)
from expiry_notifier.services.notifications.batcher import DispatchBatcher
from expiry_notifier.services.notifications.mail_queue_writer import MailQueueWriter
from expiry_notifier.services.notifications.push_sender import PushSender
from expiry_notifier.services.notifications.recipient_resolver import RecipientResolver
from expiry_notifier.services.notifications.state_tracker import (
    NotificationStateTracker,
)
from expiry_notifier.utils.datetime_utils import utc_now
from expiry_notifier.utils.errors import (
    ConfigurationError,
    DeliveryError,
    ResolutionError,
)
from expiry_notifier.utils.locks import SweepLock
from expiry_notifier.utils.logging import get_logger


class SweepType(enum.Enum):
    EXPIRED = "expired_sweep"
    EXPIRING_SOON = "expiring_soon_sweep"


SWEEP_CONDITIONS = {
    SweepType.EXPIRED: ExpiryCondition.EXPIRED,
    SweepType.EXPIRING_SOON: ExpiryCondition.EXPIRING_SOON,
}


class SweepService:
    """
    Runs one sweep: query, resolve, filter already-notified, batch, send, mark.

    Resolution and mail appends run in worker threads bounded by
    ``max_workers``. Nothing is kept between sweeps except the markers in the
    state tracker.
    """

    def __init__(
        self,
        repository: AssetRepository,
        resolver: RecipientResolver,
        tracker: NotificationStateTracker,
        batcher: DispatchBatcher,
        push_sender: Optional[PushSender] = None,
        mail_writer: Optional[MailQueueWriter] = None,
        max_workers: int = 4,
        lock: Optional[SweepLock] = None,
    ):
        self.repository = repository
        self.resolver = resolver
        self.tracker = tracker
        self.batcher = batcher
        self.push_sender = push_sender
        self.mail_writer = mail_writer
        self.max_workers = max(1, max_workers)
        self.lock = lock

    async def run(
        self,
        sweep_type: SweepType,
        channels: Iterable[NotificationChannel],
        lookahead: timedelta = timedelta(0),
        now: Optional[datetime] = None,
    ) -> SweepResult:
        """
        Run one sweep over assets expiring at or before ``now + lookahead``.

        Raises:
            RepositoryUnavailable: The record store failed; nothing was sent or marked
            ConfigurationError: A channel is enabled without a sender
        """
        channels = list(channels)
        self._check_senders(channels)

        threshold = (now or utc_now()) + lookahead
        result = SweepResult(sweep=sweep_type.value, threshold=threshold)

        if self.lock is None:
            await self._sweep(sweep_type, channels, threshold, result)
            return result

        with self.lock.hold(sweep_type.value) as acquired:
            if not acquired:
                get_logger().info(
                    f"{sweep_type.value} already running elsewhere, skipping tick"
                )
                result.skipped = True
                return result
            await self._sweep(sweep_type, channels, threshold, result)
        return result

    def _check_senders(self, channels: List[NotificationChannel]) -> None:
        if NotificationChannel.PUSH in channels and self.push_sender is None:
            raise ConfigurationError("Push channel enabled without a push sender")
        if NotificationChannel.EMAIL in channels and self.mail_writer is None:
            raise ConfigurationError("Email channel enabled without a mail queue writer")

    async def _sweep(
        self,
        sweep_type: SweepType,
        channels: List[NotificationChannel],
        threshold: datetime,
        result: SweepResult,
    ) -> None:
        logger = get_logger()

        # RepositoryUnavailable propagates: the whole tick is abandoned
        assets = await asyncio.to_thread(self.repository.find_expiring, threshold)
        result.scanned = len(assets)

        if not assets:
            logger.info(f"No extinguishers at or past {threshold.isoformat()}")
            return

        condition = SWEEP_CONDITIONS[sweep_type]
        semaphore = asyncio.Semaphore(self.max_workers)

        async def prepare(asset: AssetRecord) -> Optional[ScannedAsset]:
            async with semaphore:
                return await asyncio.to_thread(
                    self._prepare_asset, asset, condition, channels
                )

        prepared = await asyncio.gather(
            *(prepare(asset) for asset in assets), return_exceptions=True
        )

        pending: List[ScannedAsset] = []
        for asset, outcome in zip(assets, prepared):
            if isinstance(outcome, ResolutionError):
                result.resolution_failures += 1
                logger.error(
                    "Recipient resolution failed, skipping extinguisher",
                    asset_id=asset.id,
                    error=outcome.message,
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome is not None:
                pending.append(outcome)

        if NotificationChannel.PUSH in channels:
            batch = self.batcher.build_push_batch(pending)
            if batch:
                await self._dispatch_push(batch, result)

        if NotificationChannel.EMAIL in channels:
            messages = self.batcher.build_email_messages(pending)
            if messages:
                await self._dispatch_emails(messages, semaphore, result)

        logger.info(
            f"{sweep_type.value} completed",
            scanned=result.scanned,
            resolution_failures=result.resolution_failures,
            push_marked=result.push_marked,
            push_failed=result.push_failed,
            emails_marked=result.emails_marked,
            emails_failed=result.emails_failed,
            mark_failures=result.mark_failures,
        )

    def _prepare_asset(
        self,
        asset: AssetRecord,
        condition: ExpiryCondition,
        channels: List[NotificationChannel],
    ) -> Optional[ScannedAsset]:
        """Resolve one asset and drop the recipients already notified for its bucket."""
        recipients = self.resolver.resolve(asset)
        if recipients.is_empty:
            return None

        bucket = NotificationBucket(condition=condition, expiry=asset.expiry)

        push_tokens = frozenset()
        if NotificationChannel.PUSH in channels and recipients.push_tokens:
            notified = self.tracker.notified_recipients(
                asset.id, NotificationChannel.PUSH, bucket
            )
            push_tokens = recipients.push_tokens - notified

        email_target = None
        user = recipients.email_target
        if NotificationChannel.EMAIL in channels and user is not None:
            if not self.tracker.already_notified(
                asset.id, NotificationChannel.EMAIL, bucket, user.user_id
            ):
                email_target = user

        pending = ResolvedRecipients(push_tokens=push_tokens, email_target=email_target)
        if pending.is_empty:
            return None
        return ScannedAsset(asset=asset, bucket=bucket, recipients=pending)

    async def _dispatch_push(self, batch: PushBatch, result: SweepResult) -> None:
        logger = get_logger()
        try:
            report = await asyncio.to_thread(self.push_sender.send, batch)
        except DeliveryError as e:
            # Nothing is marked; the next tick retries the whole batch
            result.push_failed = len(batch.tokens)
            logger.error("Push dispatch failed", error=e.message)
            return

        succeeded = set(report.succeeded)
        result.push_failed = len(report.failed)

        def mark() -> None:
            for asset_id, token in batch.targets:
                if token not in succeeded:
                    continue
                try:
                    self.tracker.mark_notified(
                        asset_id,
                        NotificationChannel.PUSH,
                        batch.buckets[asset_id],
                        token,
                    )
                except SQLAlchemyError as e:
                    # Sent but unmarked: the next tick sends this target again
                    result.mark_failures += 1
                    logger.error(
                        "Push marker write failed", asset_id=asset_id, error=str(e)
                    )
                    continue
                result.push_marked += 1

        await asyncio.to_thread(mark)

    async def _dispatch_emails(
        self,
        messages: List[EmailMessage],
        semaphore: asyncio.Semaphore,
        result: SweepResult,
    ) -> None:
        logger = get_logger()

        def append_and_mark(message: EmailMessage) -> None:
            self.mail_writer.append(message)
            self.tracker.mark_notified(
                message.asset_id,
                NotificationChannel.EMAIL,
                message.bucket,
                message.user_id,
            )

        async def send(message: EmailMessage) -> None:
            async with semaphore:
                await asyncio.to_thread(append_and_mark, message)

        outcomes = await asyncio.gather(
            *(send(message) for message in messages), return_exceptions=True
        )

        for message, outcome in zip(messages, outcomes):
            if isinstance(outcome, SQLAlchemyError):
                # Appended but unmarked: the next tick appends it again
                result.mark_failures += 1
                logger.error(
                    "Email marker write failed",
                    asset_id=message.asset_id,
                    user_id=message.user_id,
                    error=str(outcome),
                )
            elif isinstance(outcome, DeliveryError):
                result.emails_failed += 1
                logger.error(
                    "Outbound mail append failed",
                    asset_id=message.asset_id,
                    user_id=message.user_id,
                    error=outcome.message,
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.emails_marked += 1
