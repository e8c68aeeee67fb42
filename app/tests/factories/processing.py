"""Factory functions for processing record test data."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from infrastructure.idempotency.models import (
    MessagePriority,
    ProcessingRecord,
    ProcessingStatus,
)

T0 = datetime(2025, 1, 8, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds, **kwargs)
        return self.current


class FixedRandom:
    """RandomSource that always returns the same point of the range.

    ``fraction`` 0.5 (the default) is the midpoint, i.e. no jitter.
    """

    def __init__(self, fraction: float = 0.5):
        self.fraction = fraction

    def uniform(self, a: float, b: float) -> float:
        return a + (b - a) * self.fraction


def make_processing_record(
    tenant_id: str = "tenant-a",
    message_id: str = "msg-1",
    message_type: str = "orders.created",
    source_topic: str = "orders",
    status: ProcessingStatus = ProcessingStatus.PENDING,
    attempt_count: int = 0,
    max_attempts: int = 3,
    priority: MessagePriority = MessagePriority.NORMAL,
    received_at: datetime = T0,
    payload: Any = None,
    metadata: Optional[Dict[str, Any]] = None,
    **overrides: Any,
) -> ProcessingRecord:
    """Create a ProcessingRecord that satisfies the lifecycle invariants.

    Status-dependent fields (processing_started_at, next_retry_at and the
    dead-letter fields) are filled in unless given in ``overrides``.
    """
    values: Dict[str, Any] = {
        "tenant_id": tenant_id,
        "message_id": message_id,
        "message_type": message_type,
        "source_topic": source_topic,
        "status": status,
        "attempt_count": attempt_count,
        "max_attempts": max_attempts,
        "priority": priority,
        "received_at": received_at,
        "updated_at": received_at,
        "message_payload": payload,
        "message_metadata": dict(metadata or {}),
        "version": 1,
    }
    if status in (ProcessingStatus.PROCESSING, ProcessingStatus.FAILED):
        values["processing_started_at"] = received_at
    if status == ProcessingStatus.FAILED and attempt_count < max_attempts:
        values["next_retry_at"] = received_at + timedelta(seconds=30)
    if status == ProcessingStatus.DEAD_LETTERED:
        values["is_dead_lettered"] = True
        values["dead_lettered_at"] = received_at
        values["dead_letter_reason"] = "Permanent failure: boom"
        values["processing_completed_at"] = received_at
    if status in (ProcessingStatus.COMPLETED, ProcessingStatus.CANCELLED):
        values["processing_completed_at"] = received_at
    values.update(overrides)
    return ProcessingRecord(**values)


def make_customer_payload(**overrides: Any) -> Dict[str, Any]:
    """A complete, valid customer v1.0 payload."""
    payload = {
        "customer_id": "C-1001",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "Ada.Lovelace@Example.com",
        "phone": "+1 613 555 0100",
        "country": "CA",
        "date_of_birth": "1985-12-10",
        "loyalty_points": 120,
        "created_at": "2024-01-01T10:00:00Z",
        "updated_at": "2024-06-01T10:00:00Z",
    }
    payload.update(overrides)
    return payload


def make_order_payload(**overrides: Any) -> Dict[str, Any]:
    """A complete, valid order v1.0 payload."""
    payload = {
        "order_id": "O-42",
        "customer_id": "C-1001",
        "quantity": 2,
        "unit_price": 19.99,
        "total_amount": 39.98,
        "currency": "CAD",
        "status": "paid",
        "ordered_at": "2024-06-01T10:00:00Z",
    }
    payload.update(overrides)
    return payload
