"""Unit tests for audit event models and emission."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from infrastructure.audit import AuditEvent, create_audit_event, emit_audit_event

pytestmark = pytest.mark.unit


class TestAuditEvent:
    """Tests for the AuditEvent model."""

    def test_success_event(self, sample_audit_event):
        assert sample_audit_event.result == "success"
        assert sample_audit_event.error_type is None
        assert sample_audit_event.model_dump()["audit_meta_manual_retry_count"] == "1"

    def test_failure_event(self, sample_audit_event_failure):
        assert sample_audit_event_failure.result == "failure"
        assert sample_audit_event_failure.error_type == "ConcurrencyConflict"

    def test_rejects_unknown_result(self):
        with pytest.raises(ValidationError):
            AuditEvent(
                correlation_id="c",
                action="manual_retry",
                tenant_id="tenant-a",
                resource_type="processing_record",
                resource_id="m1",
                actor="ops",
                result="partial",
            )

    def test_timestamp_defaults_to_utc_now(self):
        event = AuditEvent(
            correlation_id="c",
            action="manual_retry",
            tenant_id="tenant-a",
            resource_type="processing_record",
            resource_id="m1",
            actor="ops",
            result="success",
        )

        assert event.timestamp.endswith("+00:00")

    def test_log_payload_drops_empty_fields(self, sample_audit_event):
        payload = sample_audit_event.to_log_payload()

        assert "error_type" not in payload
        assert "error_message" not in payload
        assert payload["resource_id"] == "order-42"


class TestCreateAuditEvent:
    """Tests for create_audit_event()."""

    def test_flattens_metadata(self):
        event = create_audit_event(
            correlation_id="c",
            action="permanently_failed",
            tenant_id="tenant-a",
            resource_id="m1",
            actor="ops",
            result="success",
            metadata={"reason": "customer deleted", "attempts": 3, "note": None},
        )

        payload = event.model_dump()
        assert payload["resource_type"] == "processing_record"
        assert payload["audit_meta_reason"] == "customer deleted"
        assert payload["audit_meta_attempts"] == "3"
        assert payload["audit_meta_note"] is None

    def test_failure_fields(self):
        event = create_audit_event(
            correlation_id="c",
            action="manual_retry",
            tenant_id="tenant-a",
            resource_id="m1",
            actor="ops",
            result="failure",
            error_type="RecordNotFoundError",
            error_message="no record for tenant-a/m1",
        )

        assert event.error_type == "RecordNotFoundError"
        assert event.error_message == "no record for tenant-a/m1"

    def test_invalid_result(self):
        with pytest.raises(ValueError, match="result must be"):
            create_audit_event(
                correlation_id="c",
                action="manual_retry",
                tenant_id="tenant-a",
                resource_id="m1",
                actor="ops",
                result="unknown",
            )


class TestEmitAuditEvent:
    """Tests for emit_audit_event()."""

    def test_logs_flat_payload(self, sample_audit_event):
        with patch("infrastructure.audit.sink.logger") as mock_logger:
            returned = emit_audit_event(sample_audit_event)

        assert returned is sample_audit_event
        mock_logger.info.assert_called_once_with(
            "audit_event", **sample_audit_event.to_log_payload()
        )
