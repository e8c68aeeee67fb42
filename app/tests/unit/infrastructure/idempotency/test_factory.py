"""Unit tests for the record store factory."""

import pytest

from infrastructure.idempotency import InMemoryProcessingRecordStore
from infrastructure.idempotency.dynamodb import DynamoDBProcessingRecordStore
from infrastructure.idempotency.factory import create_record_store

pytestmark = pytest.mark.unit


class TestCreateRecordStore:
    """Tests for create_record_store()."""

    def test_memory_is_default(self, settings_factory):
        store = create_record_store(settings_factory())

        assert isinstance(store, InMemoryProcessingRecordStore)

    def test_dynamodb_backend_from_settings(self, settings_factory):
        settings = settings_factory(
            PROCESSING_BACKEND="dynamodb",
            PROCESSING_DYNAMODB_TABLE_NAME="records",
            AWS_ENDPOINT_URL="http://localhost:8000",
        )

        store = create_record_store(settings)

        assert isinstance(store, DynamoDBProcessingRecordStore)
        assert store.table_name == "records"
        assert store.client._session_provider.endpoint_url == "http://localhost:8000"

    def test_backend_override(self, settings_factory):
        settings = settings_factory(PROCESSING_BACKEND="dynamodb")

        store = create_record_store(settings, backend="memory")

        assert isinstance(store, InMemoryProcessingRecordStore)

    def test_unknown_backend(self, settings_factory):
        with pytest.raises(ValueError, match="Unknown processing backend"):
            create_record_store(settings_factory(), backend="redis")
