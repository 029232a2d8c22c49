from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.cloud.firestore_v1.base_query import FieldFilter
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from expiry_notifier.db.models import Extinguisher
from expiry_notifier.schemas.notification_schemas import AssetRecord
from expiry_notifier.utils.datetime_utils import to_naive_utc, to_utc
from expiry_notifier.utils.errors import RepositoryUnavailable
from expiry_notifier.utils.logging import get_logger

logger = get_logger()


class AssetRepository(ABC):
    """Read-only access to extinguisher records by expiry."""

    @abstractmethod
    def find_expiring(self, threshold: datetime) -> List[AssetRecord]:
        """
        Return every asset whose expiry is at or before ``threshold``.

        Raises:
            RepositoryUnavailable: The backing store could not be queried
        """


class SqlAssetRepository(AssetRepository):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def find_expiring(self, threshold: datetime) -> List[AssetRecord]:
        try:
            with self.session_factory() as db_session:
                result = db_session.execute(
                    select(Extinguisher).where(
                        Extinguisher.expiry <= to_naive_utc(threshold)
                    )
                )
                return [
                    AssetRecord(
                        id=row.id,
                        name=row.name,
                        expiry=row.expiry,
                        user_id=row.user_id,
                    )
                    for row in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            logger.error(f"Extinguisher query failed: {str(e)}")
            raise RepositoryUnavailable(f"Extinguisher query failed: {e}") from e


class FirestoreAssetRepository(AssetRepository):
    """Reads the ``fire`` collection; documents carry name, expiry and userId."""

    def __init__(self, client, collection: str = "fire"):
        self.client = client
        self.collection = collection

    def find_expiring(self, threshold: datetime) -> List[AssetRecord]:
        try:
            snapshots = (
                self.client.collection(self.collection)
                .where(filter=FieldFilter("expiry", "<=", to_utc(threshold)))
                .stream()
            )
            records = []
            for snapshot in snapshots:
                data = snapshot.to_dict() or {}
                records.append(
                    AssetRecord(
                        id=snapshot.id,
                        name=data.get("name"),
                        expiry=data["expiry"],
                        user_id=data.get("userId"),
                    )
                )
            return records
        except (GoogleAPICallError, RetryError) as e:
            logger.error(f"Firestore query on {self.collection} failed: {str(e)}")
            raise RepositoryUnavailable(
                f"Firestore query on {self.collection} failed: {e}"
            ) from e
