"""Idempotent processing of tenant-scoped units of work.

Provides the processing record model, record stores (in-memory and
DynamoDB) and the types the coordinator works with. The coordinator
itself lives in ``infrastructure.idempotency.coordinator``.

Usage:

    from infrastructure.idempotency import ExecutionOptions
    from infrastructure.idempotency.coordinator import IdempotencyCoordinator
    from infrastructure.services import get_coordinator

    coordinator = get_coordinator()
    outcome = coordinator.execute(
        "tenant-a", "order-42", "orders.created", "orders", payload, handle_order,
        options=ExecutionOptions(max_attempts=5),
    )
"""

from infrastructure.idempotency.classifiers import default_failure_classifier
from infrastructure.idempotency.errors import (
    ConcurrencyConflict,
    InvalidTransitionError,
    PermanentFailure,
    ProcessingError,
    RecordInvariantError,
    RecordNotFoundError,
    StoreError,
    TransientFailure,
    ValidationFailure,
    WorkCancelled,
)
from infrastructure.idempotency.hashing import canonical_json, content_hash
from infrastructure.idempotency.key_builder import MessageKeyBuilder
from infrastructure.idempotency.models import (
    MessagePriority,
    ProcessingRecord,
    ProcessingStatus,
    TERMINAL_STATUSES,
)
from infrastructure.idempotency.options import (
    ExecutionOptions,
    FailureKind,
    PayloadMismatchPolicy,
)
from infrastructure.idempotency.outcomes import (
    ExecutionOutcome,
    OutcomeKind,
    RejectionReason,
)
from infrastructure.idempotency.store import (
    InMemoryProcessingRecordStore,
    ProcessingRecordStore,
    RecordQuery,
)

__all__ = [
    "ConcurrencyConflict",
    "ExecutionOptions",
    "ExecutionOutcome",
    "FailureKind",
    "InMemoryProcessingRecordStore",
    "InvalidTransitionError",
    "MessageKeyBuilder",
    "MessagePriority",
    "OutcomeKind",
    "PayloadMismatchPolicy",
    "PermanentFailure",
    "ProcessingError",
    "ProcessingRecord",
    "ProcessingRecordStore",
    "ProcessingStatus",
    "RecordInvariantError",
    "RecordNotFoundError",
    "RecordQuery",
    "RejectionReason",
    "StoreError",
    "TERMINAL_STATUSES",
    "TransientFailure",
    "ValidationFailure",
    "WorkCancelled",
    "canonical_json",
    "content_hash",
    "default_failure_classifier",
]
