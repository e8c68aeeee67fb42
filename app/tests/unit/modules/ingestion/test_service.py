"""Unit tests for CDMIngestionService."""

import json

import pytest

from infrastructure.idempotency import (
    MessagePriority,
    ProcessingStatus,
    StoreError,
    TransientFailure,
)
from infrastructure.resilience.retry import HandlerRegistry
from modules.ingestion import BatchDataItem, CDMIngestionService
from tests.factories import make_customer_payload, make_order_payload

pytestmark = pytest.mark.unit


def _ingest(service, raw=None, **kwargs):
    return service.ingest(
        kwargs.pop("tenant_id", "tenant-a"),
        kwargs.pop("source_system", "crm"),
        kwargs.pop("entity_type", "customer"),
        kwargs.pop("external_id", "C-1001"),
        make_customer_payload() if raw is None else raw,
        **kwargs,
    )


class TestIngest:
    """Tests for CDMIngestionService.ingest()."""

    def test_valid_payload(self, ingestion_service, sunk):
        result = _ingest(ingestion_service)

        assert result.outcome == "completed"
        assert result.invoked is True
        assert result.quality_score == 100
        assert result.low_quality is False
        assert result.output["data"]["email"] == "ada.lovelace@example.com"
        assert sunk == [("tenant-a", result.output)]

    def test_duplicate_is_not_reprocessed(self, ingestion_service, sunk):
        first = _ingest(ingestion_service)

        second = _ingest(ingestion_service)

        assert second.outcome == "completed"
        assert second.invoked is False
        assert second.output == first.output
        assert len(sunk) == 1

    def test_reformatted_json_is_a_duplicate(self, ingestion_service, sunk):
        payload = make_customer_payload()
        _ingest(ingestion_service, json.dumps(payload))

        reordered = json.dumps(dict(reversed(list(payload.items()))), indent=2)
        result = _ingest(ingestion_service, reordered)

        assert result.outcome == "completed"
        assert result.invoked is False
        assert len(sunk) == 1

    def test_changed_content_is_rejected(self, ingestion_service):
        _ingest(ingestion_service)

        result = _ingest(ingestion_service, make_customer_payload(first_name="Augusta"))

        assert result.outcome == "rejected"
        assert result.reason == "payload_mismatch"

    def test_different_invalid_utf8_is_rejected(self, ingestion_service):
        _ingest(ingestion_service, b"\xff\xfe")

        result = _ingest(ingestion_service, b"\xfe\xff")

        assert result.outcome == "rejected"
        assert result.reason == "payload_mismatch"

    def test_invalid_payload_is_dead_lettered(self, ingestion_service, store, sunk):
        payload = make_customer_payload()
        del payload["email"]

        result = _ingest(ingestion_service, payload)

        assert result.outcome == "dead_lettered"
        assert result.reason == (
            "Permanent failure: customer payload failed validation: "
            "missing required field 'email'"
        )
        assert sunk == []
        record = store.get("tenant-a", result.message_id)
        assert record.status == ProcessingStatus.DEAD_LETTERED
        assert record.attempt_count == 1
        assert "missing required field 'email'" in record.exception_details

    def test_malformed_payload_is_dead_lettered(self, ingestion_service):
        result = _ingest(ingestion_service, "{not json")

        assert result.outcome == "dead_lettered"
        assert "malformed JSON" in result.reason

    def test_low_quality_flagged(self, coordinator, validator, sunk):
        service = CDMIngestionService(
            coordinator,
            validator=validator,
            sink=lambda t, e: sunk.append(e),
            quality_threshold=99,
        )

        result = _ingest(service, make_customer_payload(email="not-an-email"))

        assert result.outcome == "completed"
        assert result.quality_score == 97
        assert result.low_quality is True
        assert len(sunk) == 1

    def test_sink_failure_is_retried(self, coordinator, validator, clock):
        calls = []

        def flaky_sink(tenant_id, envelope):
            calls.append(envelope)
            if len(calls) == 1:
                raise TransientFailure("warehouse unavailable")

        service = CDMIngestionService(coordinator, validator=validator, sink=flaky_sink)

        first = _ingest(service)
        clock.advance(30)
        second = _ingest(service)

        assert first.outcome == "failed"
        assert first.error_message == "warehouse unavailable"
        assert second.outcome == "completed"
        assert len(calls) == 2

    def test_records_metadata(self, ingestion_service, store):
        result = _ingest(
            ingestion_service,
            correlation_id="corr-1",
            batch_id="batch-1",
            priority=MessagePriority.HIGH,
        )

        record = store.get("tenant-a", result.message_id)
        assert record.message_type == "cdm.ingest"
        assert record.source_topic == "cdm-ingestion"
        assert record.priority == MessagePriority.HIGH
        assert record.message_metadata == {
            "source_system": "crm",
            "entity_type": "customer",
            "external_id": "C-1001",
            "batch_id": "batch-1",
            "correlation_id": "corr-1",
        }

    def test_explicit_message_id(self, ingestion_service):
        result = _ingest(ingestion_service, message_id="msg-77")

        assert result.message_id == "msg-77"

    def test_tenants_are_isolated(self, ingestion_service, sunk):
        _ingest(ingestion_service, tenant_id="tenant-a")
        result = _ingest(ingestion_service, tenant_id="tenant-b")

        assert result.invoked is True
        assert [t for t, _ in sunk] == ["tenant-a", "tenant-b"]


class TestMessageIds:
    """Tests for message id derivation and handler registration."""

    def test_message_id_is_stable(self, ingestion_service):
        a = ingestion_service.message_id_for("crm", "customer", "C-1")
        b = ingestion_service.message_id_for("crm", "customer", "C-1")
        c = ingestion_service.message_id_for("crm", "customer", "C-2")

        assert a == b != c
        assert a.startswith("cdm:crm:")

    def test_register_with(self, ingestion_service):
        registry = HandlerRegistry()

        ingestion_service.register_with(registry)

        assert registry.get("cdm.ingest").work_fn == ingestion_service.process


class TestIngestBatch:
    """Tests for CDMIngestionService.ingest_batch()."""

    def test_counts_outcomes(self, ingestion_service, store):
        invalid = make_order_payload()
        del invalid["currency"]
        items = [
            BatchDataItem(
                source_system="crm",
                entity_type="customer",
                external_id="C-1001",
                raw_data=make_customer_payload(),
            ),
            {
                "source_system": "shop",
                "entity_type": "order",
                "external_id": "O-42",
                "raw_data": json.dumps(make_order_payload()),
            },
            {
                "source_system": "shop",
                "entity_type": "order",
                "external_id": "O-43",
                "raw_data": invalid,
            },
            {
                "source_system": "crm",
                "entity_type": "customer",
                "external_id": "C-1001",
                "raw_data": make_customer_payload(),
            },
        ]

        summary = ingestion_service.ingest_batch(items, "tenant-a", batch_id="b-1")

        assert summary.batch_id == "b-1"
        assert summary.total == 4
        assert summary.completed == 3
        assert summary.dead_lettered == 1
        assert [r.invoked for r in summary.results] == [True, True, True, False]
        record = store.get("tenant-a", summary.results[1].message_id)
        assert record.message_metadata["batch_id"] == "b-1"

    def test_generates_batch_id(self, ingestion_service):
        summary = ingestion_service.ingest_batch([], "tenant-a")

        assert len(summary.batch_id) == 32
        assert summary.total == 0

    def test_store_failure_does_not_stop_batch(
        self, ingestion_service, coordinator, monkeypatch
    ):
        real_execute = coordinator.execute

        def execute(tenant_id, message_id, *args, **kwargs):
            if message_id == "broken":
                raise StoreError("table unavailable")
            return real_execute(tenant_id, message_id, *args, **kwargs)

        monkeypatch.setattr(coordinator, "execute", execute)
        items = [
            {
                "source_system": "crm",
                "entity_type": "customer",
                "external_id": "C-1",
                "raw_data": make_customer_payload(),
                "message_id": "broken",
            },
            {
                "source_system": "crm",
                "entity_type": "customer",
                "external_id": "C-2",
                "raw_data": make_customer_payload(customer_id="C-2"),
            },
        ]

        summary = ingestion_service.ingest_batch(items, "tenant-a")

        assert summary.failed == 1
        assert summary.completed == 1
        assert summary.results[0].error_message == "table unavailable"


class TestFromSettings:
    """Tests for CDMIngestionService.from_settings()."""

    def test_reads_ingestion_settings(self, coordinator, monkeypatch):
        from infrastructure.configuration import Settings

        monkeypatch.setenv("QUALITY_THRESHOLD", "65")
        monkeypatch.setenv("INGESTION_MESSAGE_TYPE", "cdm.v2")
        monkeypatch.setenv("INGESTION_SOURCE_TOPIC", "cdm-v2")

        service = CDMIngestionService.from_settings(coordinator, Settings())

        assert service.quality_threshold == 65
        assert service.message_type == "cdm.v2"
        assert service.source_topic == "cdm-v2"
