import json
from abc import ABC, abstractmethod

from google.api_core.exceptions import GoogleAPICallError, RetryError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from expiry_notifier.db.models import NotificationChannel, OutboundMail
from expiry_notifier.schemas.notification_schemas import EmailMessage
from expiry_notifier.utils.errors import DeliveryError


class MailQueueWriter(ABC):
    """
    Appends composed messages to the outbound mail queue.

    A successful append counts as a successful dispatch; delivery beyond the
    queue belongs to the mail extension that drains it.
    """

    @abstractmethod
    def append(self, message: EmailMessage) -> str:
        """
        Append one message and return its queue id.

        Raises:
            DeliveryError: The append failed
        """


class SqlMailQueueWriter(MailQueueWriter):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def append(self, message: EmailMessage) -> str:
        # One transaction per message, so one failure does not roll back others
        with self.session_factory() as db_session:
            try:
                mail = OutboundMail(
                    recipients=json.dumps(message.to),
                    subject=message.message.subject,
                    text=message.message.text,
                )
                db_session.add(mail)
                db_session.commit()
                return mail.id
            except SQLAlchemyError as e:
                db_session.rollback()
                raise DeliveryError(
                    f"Outbound mail append failed: {e}",
                    channel=NotificationChannel.EMAIL.value,
                    target=message.user_id,
                ) from e


class FirestoreMailQueueWriter(MailQueueWriter):
    """Adds documents to the collection watched by the mail delivery extension."""

    def __init__(self, client, collection: str = "mail"):
        self.client = client
        self.collection = collection

    def append(self, message: EmailMessage) -> str:
        try:
            _, document = self.client.collection(self.collection).add(
                message.to_document()
            )
            return document.id
        except (GoogleAPICallError, RetryError) as e:
            raise DeliveryError(
                f"Outbound mail append failed: {e}",
                channel=NotificationChannel.EMAIL.value,
                target=message.user_id,
            ) from e
