"""Outcomes returned by the idempotency coordinator."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class OutcomeKind(str, Enum):
    """The four outcomes a caller can observe."""

    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"


class RejectionReason(str, Enum):
    """Why a call was rejected without changing the record's outcome.

    Values:
        IN_PROGRESS: Another worker owns the record and is within its window
        NOT_YET_DUE: The record is FAILED and its retry time has not come
        EXHAUSTED: FAILED with no attempts left (dead-letter queue disabled)
        CANCELLED: The record was cancelled
        PAYLOAD_MISMATCH: Same message id, different payload
        CONCURRENCY_CONFLICT: Lost the claim race repeatedly
        TIMED_OUT: Work overran its timeout; record left for reclaim
        OWNERSHIP_LOST: Record was reclaimed while this call ran the work
    """

    IN_PROGRESS = "in_progress"
    NOT_YET_DUE = "not_yet_due"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    PAYLOAD_MISMATCH = "payload_mismatch"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    TIMED_OUT = "timed_out"
    OWNERSHIP_LOST = "ownership_lost"


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of ``IdempotencyCoordinator.execute``.

    Attributes:
        kind: Which of the four outcomes occurred
        tenant_id, message_id: The dedup key
        result: Cached processing result (COMPLETED only)
        reason: Rejection reason (REJECTED only)
        retry_at: When the record becomes due again (FAILED, NOT_YET_DUE)
        dead_letter_reason: Why the record was dead-lettered
        error_message: Failure text of the attempt, when one ran
        attempt_count: Record attempt count after the call
        invoked: Whether this call ran the work function
    """

    kind: OutcomeKind
    tenant_id: str
    message_id: str
    result: Any = None
    reason: Optional[RejectionReason] = None
    retry_at: Optional[datetime] = None
    dead_letter_reason: Optional[str] = None
    error_message: Optional[str] = None
    attempt_count: int = 0
    invoked: bool = False

    @property
    def is_completed(self) -> bool:
        return self.kind == OutcomeKind.COMPLETED

    @property
    def is_rejected(self) -> bool:
        return self.kind == OutcomeKind.REJECTED

    @property
    def is_failed(self) -> bool:
        return self.kind == OutcomeKind.FAILED

    @property
    def is_dead_lettered(self) -> bool:
        return self.kind == OutcomeKind.DEAD_LETTERED

    @classmethod
    def completed(cls, tenant_id: str, message_id: str, result: Any, **kw: Any):
        return cls(OutcomeKind.COMPLETED, tenant_id, message_id, result=result, **kw)

    @classmethod
    def rejected(
        cls, tenant_id: str, message_id: str, reason: RejectionReason, **kw: Any
    ):
        return cls(OutcomeKind.REJECTED, tenant_id, message_id, reason=reason, **kw)

    @classmethod
    def failed(cls, tenant_id: str, message_id: str, retry_at: datetime, **kw: Any):
        return cls(OutcomeKind.FAILED, tenant_id, message_id, retry_at=retry_at, **kw)

    @classmethod
    def dead_lettered(cls, tenant_id: str, message_id: str, reason: str, **kw: Any):
        return cls(
            OutcomeKind.DEAD_LETTERED,
            tenant_id,
            message_id,
            dead_letter_reason=reason,
            **kw,
        )
