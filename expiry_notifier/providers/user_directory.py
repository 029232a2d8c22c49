from abc import ABC, abstractmethod
from typing import Optional

from google.cloud.firestore_v1.base_query import FieldFilter
from sqlalchemy import select
from sqlalchemy.orm import selectinload, sessionmaker

from expiry_notifier.db.models import User
from expiry_notifier.schemas.notification_schemas import UserContact


class UserDirectory(ABC):
    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserContact]:
        """Look up one user by ``userId``; None when no user matches."""


class SqlUserDirectory(UserDirectory):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_user(self, user_id: str) -> Optional[UserContact]:
        # Each lookup gets its own session so lookups can run in worker threads
        with self.session_factory() as db_session:
            result = db_session.execute(
                select(User)
                .options(selectinload(User.device_tokens))
                .where(User.user_id == user_id)
                .limit(1)
            )
            user = result.scalar_one_or_none()
            if not user:
                return None

            return UserContact(
                user_id=user.user_id,
                email=user.email,
                username=user.username,
                push_tokens=frozenset(t.token for t in user.device_tokens),
            )


class FirestoreUserDirectory(UserDirectory):
    """Reads the ``users`` collection, matching on the ``userId`` field."""

    def __init__(self, client, collection: str = "users"):
        self.client = client
        self.collection = collection

    def get_user(self, user_id: str) -> Optional[UserContact]:
        snapshots = (
            self.client.collection(self.collection)
            .where(filter=FieldFilter("userId", "==", user_id))
            .limit(1)
            .get()
        )
        if not snapshots:
            return None

        data = snapshots[0].to_dict() or {}
        return UserContact(
            user_id=data.get("userId", user_id),
            email=data.get("email"),
            username=data.get("username"),
            push_tokens=frozenset(data.get("fcmTokens") or []),
        )
