import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from google.api_core.exceptions import ServiceUnavailable
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from expiry_notifier.providers.asset_repository import (
    FirestoreAssetRepository,
    SqlAssetRepository,
)
from expiry_notifier.utils.errors import RepositoryUnavailable

pytestmark = pytest.mark.unit


class TestSqlAssetRepository:
    """Test expiry range queries against SQL."""

    def test_finds_assets_at_or_before_threshold(
        self, session_factory, add_extinguisher, now
    ):
        add_extinguisher("past", now - timedelta(days=1), name="Past")
        add_extinguisher("exact", now, name="Exact")
        add_extinguisher("future", now + timedelta(minutes=1), name="Future")

        repository = SqlAssetRepository(session_factory)
        ids = {asset.id for asset in repository.find_expiring(now)}

        assert ids == {"past", "exact"}

    def test_lookahead_window_boundaries(self, session_factory, add_extinguisher, now):
        add_extinguisher("soon", now + timedelta(minutes=4))
        repository = SqlAssetRepository(session_factory)

        included = repository.find_expiring(now + timedelta(minutes=5))
        excluded = repository.find_expiring(now + timedelta(minutes=3))

        assert [asset.id for asset in included] == ["soon"]
        assert excluded == []

    def test_maps_columns_to_records(self, session_factory, add_extinguisher, now):
        add_extinguisher("A1", now, name="Lobby Extinguisher", user_id="U1")
        add_extinguisher("A2", now)

        records = {a.id: a for a in SqlAssetRepository(session_factory).find_expiring(now)}

        assert records["A1"].name == "Lobby Extinguisher"
        assert records["A1"].user_id == "U1"
        assert records["A1"].expiry == now
        assert records["A1"].expiry.tzinfo is not None
        assert records["A2"].name is None
        assert records["A2"].user_id is None

    def test_empty_store(self, session_factory, now):
        assert SqlAssetRepository(session_factory).find_expiring(now) == []

    def test_unreachable_database_raises_repository_unavailable(self, tmp_path, now):
        engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'nowhere.db'}")
        factory = sessionmaker(bind=engine, class_=Session)

        with pytest.raises(RepositoryUnavailable) as exc_info:
            SqlAssetRepository(factory).find_expiring(now)

        assert exc_info.value.error_code == "REPOSITORY_UNAVAILABLE"


def _snapshot(doc_id, data):
    snapshot = MagicMock()
    snapshot.id = doc_id
    snapshot.to_dict.return_value = data
    return snapshot


class TestFirestoreAssetRepository:
    """Test the Firestore ``fire`` collection adapter with a mocked client."""

    def test_reads_documents(self, now):
        client = MagicMock()
        query = client.collection.return_value.where.return_value
        query.stream.return_value = [
            _snapshot("A1", {"name": "Lobby", "expiry": now, "userId": "U1"}),
            _snapshot("A2", {"expiry": now - timedelta(hours=1)}),
        ]

        records = FirestoreAssetRepository(client).find_expiring(now)

        client.collection.assert_called_once_with("fire")
        field_filter = client.collection.return_value.where.call_args.kwargs["filter"]
        assert field_filter.field_path == "expiry"
        assert field_filter.op_string == "<="
        assert [r.id for r in records] == ["A1", "A2"]
        assert records[0].user_id == "U1"
        assert records[1].name is None

    def test_naive_threshold_is_sent_as_utc(self):
        client = MagicMock()
        client.collection.return_value.where.return_value.stream.return_value = []

        FirestoreAssetRepository(client, "extinguishers").find_expiring(
            datetime(2026, 1, 1, 12, 0)
        )

        field_filter = client.collection.return_value.where.call_args.kwargs["filter"]
        assert field_filter.value == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        client.collection.assert_called_once_with("extinguishers")

    def test_api_error_raises_repository_unavailable(self, now):
        client = MagicMock()
        client.collection.return_value.where.return_value.stream.side_effect = (
            ServiceUnavailable("firestore down")
        )

        with pytest.raises(RepositoryUnavailable):
            FirestoreAssetRepository(client).find_expiring(now)
