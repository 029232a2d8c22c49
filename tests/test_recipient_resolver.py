import pytest
from unittest.mock import MagicMock, Mock

from sqlalchemy.exc import OperationalError

from expiry_notifier.providers.user_directory import (
    FirestoreUserDirectory,
    SqlUserDirectory,
)
from expiry_notifier.schemas.notification_schemas import AssetRecord, UserContact
from expiry_notifier.services.notifications.recipient_resolver import RecipientResolver
from expiry_notifier.utils.errors import ResolutionError

pytestmark = pytest.mark.unit


@pytest.fixture
def resolver(session_factory):
    return RecipientResolver(SqlUserDirectory(session_factory))


class TestRecipientResolver:
    """Test mapping extinguishers to their owner's targets."""

    def test_owner_with_tokens_and_email(self, resolver, add_user, now):
        add_user("U1", email="alice@x.org", username="Alice", tokens=["t1", "t2"])
        asset = AssetRecord(id="A1", name="Lobby", expiry=now, user_id="U1")

        recipients = resolver.resolve(asset)

        assert recipients.push_tokens == frozenset({"t1", "t2"})
        assert recipients.email_target.email == "alice@x.org"
        assert recipients.email_target.username == "Alice"
        assert not recipients.is_empty

    def test_owner_without_email_has_no_email_target(self, resolver, add_user, now):
        add_user("U1", tokens=["t1"])
        asset = AssetRecord(id="A1", expiry=now, user_id="U1")

        recipients = resolver.resolve(asset)

        assert recipients.push_tokens == frozenset({"t1"})
        assert recipients.email_target is None

    def test_unknown_owner_resolves_empty(self, resolver, now):
        asset = AssetRecord(id="A1", expiry=now, user_id="ghost")
        assert resolver.resolve(asset).is_empty

    def test_asset_without_owner_resolves_empty(self, resolver, now):
        asset = AssetRecord(id="A1", expiry=now)
        assert resolver.resolve(asset).is_empty

    def test_owner_with_nothing_registered_resolves_empty(
        self, resolver, add_user, now
    ):
        add_user("U1")
        asset = AssetRecord(id="A1", expiry=now, user_id="U1")
        assert resolver.resolve(asset).is_empty

    def test_lookup_failure_raises_resolution_error(self, now):
        directory = Mock()
        directory.get_user.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        asset = AssetRecord(id="A1", expiry=now, user_id="U1")

        with pytest.raises(ResolutionError) as exc_info:
            RecipientResolver(directory).resolve(asset)

        assert exc_info.value.asset_id == "A1"
        assert exc_info.value.error_code == "RESOLUTION_ERROR"


class TestFirestoreUserDirectory:
    def _client_returning(self, snapshots):
        client = MagicMock()
        query = client.collection.return_value.where.return_value.limit.return_value
        query.get.return_value = snapshots
        return client

    def test_reads_user_document(self):
        snapshot = MagicMock()
        snapshot.to_dict.return_value = {
            "userId": "U1",
            "email": "alice@x.org",
            "username": "Alice",
            "fcmTokens": ["t1", "t1", "t2"],
        }
        client = self._client_returning([snapshot])

        user = FirestoreUserDirectory(client).get_user("U1")

        client.collection.assert_called_once_with("users")
        field_filter = client.collection.return_value.where.call_args.kwargs["filter"]
        assert field_filter.field_path == "userId"
        assert field_filter.value == "U1"
        assert user == UserContact(
            user_id="U1",
            email="alice@x.org",
            username="Alice",
            push_tokens=frozenset({"t1", "t2"}),
        )

    def test_missing_user(self):
        client = self._client_returning([])
        assert FirestoreUserDirectory(client).get_user("U1") is None

    def test_document_without_tokens(self):
        snapshot = MagicMock()
        snapshot.to_dict.return_value = {"userId": "U1", "fcmTokens": None}
        client = self._client_returning([snapshot])

        user = FirestoreUserDirectory(client).get_user("U1")

        assert user.push_tokens == frozenset()
        assert user.email is None
