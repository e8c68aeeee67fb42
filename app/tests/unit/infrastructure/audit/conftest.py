"""Pytest fixtures for audit infrastructure tests."""

import pytest
from infrastructure.audit.models import AuditEvent


@pytest.fixture
def sample_audit_event():
    """Successful manual retry of a dead-lettered record."""
    return AuditEvent(
        correlation_id="req-test-123",
        timestamp="2025-01-08T12:00:00+00:00",
        action="manual_retry",
        tenant_id="tenant-a",
        resource_type="processing_record",
        resource_id="order-42",
        actor="ops@example.com",
        result="success",
        audit_meta_manual_retry_count="1",
    )


@pytest.fixture
def sample_audit_event_failure():
    """Manual retry rejected because the record was not dead-lettered."""
    return AuditEvent(
        correlation_id="req-test-456",
        timestamp="2025-01-08T12:01:00+00:00",
        action="manual_retry",
        tenant_id="tenant-a",
        resource_type="processing_record",
        resource_id="order-43",
        actor="ops@example.com",
        result="failure",
        error_type="ConcurrencyConflict",
        error_message="expected status ['dead_lettered'], found completed",
    )
