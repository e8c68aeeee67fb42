"""Processing record model and lifecycle rules.

A ProcessingRecord tracks one tenant-scoped unit of work from first
sighting to completion, cancellation or the dead-letter queue.
"""

import copy
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from infrastructure.idempotency.errors import (
    InvalidTransitionError,
    RecordInvariantError,
)


class ProcessingStatus(str, Enum):
    """Lifecycle state of a processing record."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"
    CANCELLED = "cancelled"


class MessagePriority(IntEnum):
    """Priority used to order retries. Higher values are retried first."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


TERMINAL_STATUSES: FrozenSet[ProcessingStatus] = frozenset(
    {
        ProcessingStatus.COMPLETED,
        ProcessingStatus.DEAD_LETTERED,
        ProcessingStatus.CANCELLED,
    }
)

ALLOWED_TRANSITIONS: Mapping[ProcessingStatus, FrozenSet[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset(
        {
            ProcessingStatus.PROCESSING,
            ProcessingStatus.CANCELLED,
            ProcessingStatus.DEAD_LETTERED,
        }
    ),
    ProcessingStatus.PROCESSING: frozenset(
        {
            ProcessingStatus.PROCESSING,
            ProcessingStatus.COMPLETED,
            ProcessingStatus.FAILED,
            ProcessingStatus.DEAD_LETTERED,
        }
    ),
    ProcessingStatus.FAILED: frozenset(
        {
            ProcessingStatus.PROCESSING,
            ProcessingStatus.CANCELLED,
            ProcessingStatus.DEAD_LETTERED,
        }
    ),
    # Only reachable through DeadLetterManager.manual_retry
    ProcessingStatus.DEAD_LETTERED: frozenset({ProcessingStatus.PENDING}),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.CANCELLED: frozenset(),
}

_DATETIME_FIELDS = frozenset(
    {
        "received_at",
        "processing_started_at",
        "processing_completed_at",
        "next_retry_at",
        "dead_lettered_at",
        "last_manual_retry_at",
        "updated_at",
    }
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProcessingRecord:
    """State of one keyed unit of work.

    ``(tenant_id, message_id)`` is unique. ``version`` is incremented by
    the store on every write and backs optimistic concurrency.
    """

    tenant_id: str
    message_id: str
    message_type: str
    source_topic: str
    priority: MessagePriority = MessagePriority.NORMAL

    status: ProcessingStatus = ProcessingStatus.PENDING
    attempt_count: int = 0
    max_attempts: int = 3
    received_at: datetime = field(default_factory=utc_now)
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None
    processing_duration_ms: Optional[int] = None
    next_retry_at: Optional[datetime] = None
    retry_delay_seconds: Optional[float] = None

    error_message: Optional[str] = None
    exception_details: Optional[str] = None
    message_hash: Optional[str] = None
    message_metadata: Dict[str, Any] = field(default_factory=dict)
    message_payload: Any = None
    schema_version: str = "1.0"

    is_dead_lettered: bool = False
    dead_lettered_at: Optional[datetime] = None
    dead_letter_reason: Optional[str] = None

    processing_result: Any = None

    manual_retry_count: int = 0
    last_manual_retry_at: Optional[datetime] = None
    last_manual_retry_by: Optional[str] = None

    updated_at: datetime = field(default_factory=utc_now)
    version: int = 0

    def __post_init__(self) -> None:
        if not self.tenant_id:
            raise ValueError("tenant_id is required")
        if not self.message_id:
            raise ValueError("message_id is required")
        # 0 is a closed budget: parked FAILED records with the DLQ disabled
        if self.max_attempts < 0:
            raise ValueError("max_attempts cannot be negative")

    @property
    def key(self) -> tuple[str, str]:
        return (self.tenant_id, self.message_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_attempts_remaining(self) -> bool:
        return self.attempt_count < self.max_attempts

    @property
    def finished_at(self) -> Optional[datetime]:
        """When the record reached its terminal state, if it has."""
        if self.status == ProcessingStatus.DEAD_LETTERED:
            return self.dead_lettered_at or self.processing_completed_at
        if self.is_terminal:
            return self.processing_completed_at or self.updated_at
        return None

    def copy(self) -> "ProcessingRecord":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict with enums as values and datetimes as ISO strings."""
        data = asdict(self)
        data["status"] = self.status.value
        data["priority"] = int(self.priority)
        for name in _DATETIME_FIELDS:
            value = data.get(name)
            if isinstance(value, datetime):
                data[name] = value.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProcessingRecord":
        """Inverse of ``to_dict``. Unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["status"] = ProcessingStatus(values.get("status", "pending"))
        values["priority"] = MessagePriority(int(values.get("priority", 1)))
        for name in _DATETIME_FIELDS:
            value = values.get(name)
            if isinstance(value, str):
                values[name] = datetime.fromisoformat(value)
        return cls(**values)


def check_transition(
    current: ProcessingStatus, target: ProcessingStatus, *, manual: bool = False
) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is allowed.

    DEAD_LETTERED -> PENDING additionally requires ``manual=True``.
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"transition {current.value} -> {target.value} is not allowed"
        )
    if current == ProcessingStatus.DEAD_LETTERED and not manual:
        raise InvalidTransitionError(
            "dead-lettered records can only be reset by a manual retry"
        )


def check_invariants(record: ProcessingRecord) -> None:
    """Raise RecordInvariantError if the record's fields disagree with its status."""
    due_retry = (
        record.status == ProcessingStatus.FAILED and record.has_attempts_remaining
    )
    if due_retry and record.next_retry_at is None:
        raise RecordInvariantError(
            "failed record with attempts remaining must have next_retry_at"
        )
    if not due_retry and record.next_retry_at is not None:
        raise RecordInvariantError(
            f"next_retry_at must be empty for status {record.status.value} "
            f"with attempt {record.attempt_count}/{record.max_attempts}"
        )
    if record.is_dead_lettered != (record.status == ProcessingStatus.DEAD_LETTERED):
        raise RecordInvariantError("is_dead_lettered must match DEAD_LETTERED status")
    if record.attempt_count < 0:
        raise RecordInvariantError("attempt_count cannot be negative")
    if record.status == ProcessingStatus.PROCESSING and (
        record.processing_started_at is None
    ):
        raise RecordInvariantError("processing record must have processing_started_at")


def validate_write(
    before: ProcessingRecord, after: ProcessingRecord, *, manual: bool = False
) -> None:
    """Check a proposed write against the lifecycle rules.

    Identity fields never change and terminal records never change
    except through the manual dead-letter reset.
    """
    if before.key != after.key:
        raise RecordInvariantError("record identity cannot change")
    if before.is_terminal and not manual:
        raise InvalidTransitionError(
            f"record is terminal ({before.status.value}) and cannot be modified"
        )
    if before.status != after.status:
        check_transition(before.status, after.status, manual=manual)
    check_invariants(after)
