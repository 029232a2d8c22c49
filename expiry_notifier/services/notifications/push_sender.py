from typing import List

from firebase_admin import messaging
from firebase_admin.exceptions import FirebaseError

from expiry_notifier.db.models import NotificationChannel
from expiry_notifier.schemas.notification_schemas import PushBatch, PushDeliveryReport
from expiry_notifier.utils.errors import DeliveryError
from expiry_notifier.utils.logging import get_logger

logger = get_logger()

# FCM rejects multicast messages with more tokens than this
FCM_MULTICAST_LIMIT = 500


class PushSender:
    """Hands a multicast payload to Firebase Cloud Messaging."""

    def __init__(self, app=None, batch_size: int = FCM_MULTICAST_LIMIT):
        self.app = app
        self.batch_size = max(1, min(batch_size, FCM_MULTICAST_LIMIT))

    def _chunks(self, tokens: List[str]) -> List[List[str]]:
        return [
            tokens[i : i + self.batch_size]
            for i in range(0, len(tokens), self.batch_size)
        ]

    def send(self, batch: PushBatch) -> PushDeliveryReport:
        """
        Send ``batch`` to every token and report the outcome per token.

        Raises:
            DeliveryError: The provider could not be reached for any token
        """
        report = PushDeliveryReport()
        provider_errors = []

        for chunk in self._chunks(batch.tokens):
            message = messaging.MulticastMessage(
                notification=messaging.Notification(title=batch.title, body=batch.body),
                tokens=chunk,
            )
            try:
                response = messaging.send_each_for_multicast(message, app=self.app)
            except (FirebaseError, ValueError) as e:
                logger.error(f"FCM multicast failed for {len(chunk)} tokens: {str(e)}")
                provider_errors.append(str(e))
                for token in chunk:
                    report.failed[token] = str(e)
                continue

            for token, send_response in zip(chunk, response.responses):
                if send_response.success:
                    report.succeeded.append(token)
                else:
                    report.failed[token] = str(send_response.exception)

        if provider_errors and not report.succeeded:
            raise DeliveryError(
                f"Push provider unavailable: {provider_errors[0]}",
                channel=NotificationChannel.PUSH.value,
            )

        if report.failed:
            logger.warning(
                f"FCM rejected {len(report.failed)} of {len(batch.tokens)} tokens"
            )
        return report
