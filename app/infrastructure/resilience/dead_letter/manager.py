"""Dead-letter queue management.

Owns every transition into and out of DEAD_LETTERED: the terminal
transition made when work is hopeless, the operator query surface, the
audited manual retry and the operator's final verdict.
"""

import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional, Tuple

from infrastructure.audit import AuditEvent, create_audit_event, emit_audit_event
from infrastructure.idempotency.errors import ProcessingError
from infrastructure.idempotency.models import (
    ProcessingRecord,
    ProcessingStatus,
    utc_now,
)
from infrastructure.idempotency.store import ProcessingRecordStore, RecordQuery
from infrastructure.logging import get_correlation_id, get_module_logger
from infrastructure.resilience.dead_letter.models import (
    DeadLetterPage,
    DeadLetterQuery,
    ProcessingStats,
)

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

logger = get_module_logger()

NON_TERMINAL_STATUSES: Tuple[ProcessingStatus, ...] = (
    ProcessingStatus.PENDING,
    ProcessingStatus.PROCESSING,
    ProcessingStatus.FAILED,
)


class DeadLetterManager:
    """Terminal-state management and operator surface for dead letters.

    Attributes:
        store: Record store shared with the coordinator
        enabled: When False, hopeless records are parked as FAILED with a
            closed budget instead of being dead-lettered
    """

    def __init__(
        self,
        store: ProcessingRecordStore,
        enabled: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        audit_sink: Callable[[AuditEvent], AuditEvent] = emit_audit_event,
    ) -> None:
        self.store = store
        self.enabled = enabled
        self._clock = clock or utc_now
        self._audit_sink = audit_sink

    @classmethod
    def from_settings(
        cls, store: ProcessingRecordStore, settings: "Settings", **kwargs
    ) -> "DeadLetterManager":
        return cls(store, enabled=settings.dead_letter.enabled, **kwargs)

    def mark_dead(
        self,
        tenant_id: str,
        message_id: str,
        reason: str,
        *,
        expected_status: Optional[ProcessingStatus] = None,
        error_message: Optional[str] = None,
        exception_details: Optional[str] = None,
        expected_attempt_count: Optional[int] = None,
    ) -> ProcessingRecord:
        """Move a record to DEAD_LETTERED.

        Args:
            reason: Why the work is hopeless (kept as dead_letter_reason)
            expected_status: Status the record must be in. Defaults to any
                non-terminal status.
            error_message: Failure text. Falls back to the record's last
                error, then to the reason.
            exception_details: Serialized exception of the final attempt
            expected_attempt_count: Guard against a concurrent reclaim

        Returns:
            The updated record (FAILED with a closed budget when the
            dead-letter queue is disabled)

        Raises:
            ConcurrencyConflict: The record no longer matches the guards
        """
        now = self._clock()
        expected = expected_status or NON_TERMINAL_STATUSES

        def mutation(record: ProcessingRecord) -> None:
            record.error_message = error_message or record.error_message or reason
            if exception_details is not None:
                record.exception_details = exception_details
            record.next_retry_at = None
            if record.processing_started_at is not None:
                record.processing_duration_ms = int(
                    (now - record.processing_started_at).total_seconds() * 1000
                )

            if not self.enabled:
                record.status = ProcessingStatus.FAILED
                record.max_attempts = record.attempt_count
                record.message_metadata["closed_reason"] = reason
                return

            record.status = ProcessingStatus.DEAD_LETTERED
            record.is_dead_lettered = True
            record.dead_lettered_at = now
            record.dead_letter_reason = reason
            record.processing_completed_at = now

        updated = self.store.conditional_update(
            tenant_id,
            message_id,
            expected,
            mutation,
            expected_attempt_count=expected_attempt_count,
        )
        logger.warning(
            "processing_dead_lettered" if self.enabled else "processing_budget_closed",
            tenant_id=tenant_id,
            message_id=message_id,
            message_type=updated.message_type,
            attempt_count=updated.attempt_count,
            reason=reason,
        )
        return updated

    def list(
        self,
        tenant_id: str,
        filters: Optional[DeadLetterQuery] = None,
        skip: int = 0,
        take: int = 50,
    ) -> DeadLetterPage:
        """Page through dead-lettered records, newest first."""
        if skip < 0 or take < 1:
            raise ValueError("skip must be >= 0 and take >= 1")
        filters = filters or DeadLetterQuery()
        records = self.store.find(
            tenant_id,
            RecordQuery(
                statuses=(ProcessingStatus.DEAD_LETTERED,),
                message_type=filters.message_type,
                source_topic=filters.source_topic,
                since=filters.since,
                until=filters.until,
                time_field="dead_lettered_at",
            ),
        )
        records.sort(key=lambda r: r.dead_lettered_at or r.updated_at, reverse=True)
        return DeadLetterPage(
            items=records[skip : skip + take],
            total=len(records),
            skip=skip,
            take=take,
        )

    def manual_retry(
        self, tenant_id: str, message_id: str, actor: str = "system"
    ) -> ProcessingRecord:
        """Reset a dead-lettered record to PENDING with a fresh budget.

        The only backward transition in the record lifecycle. Audited
        whether it succeeds or not.

        Raises:
            ConcurrencyConflict: The record is not DEAD_LETTERED
            RecordNotFoundError: No record exists for the key
        """
        now = self._clock()

        def mutation(record: ProcessingRecord) -> None:
            record.status = ProcessingStatus.PENDING
            record.attempt_count = 0
            record.is_dead_lettered = False
            record.dead_lettered_at = None
            record.dead_letter_reason = None
            record.next_retry_at = None
            record.processing_started_at = None
            record.processing_completed_at = None
            record.processing_duration_ms = None
            record.manual_retry_count += 1
            record.last_manual_retry_at = now
            record.last_manual_retry_by = actor

        try:
            updated = self.store.conditional_update(
                tenant_id,
                message_id,
                ProcessingStatus.DEAD_LETTERED,
                mutation,
                manual=True,
            )
        except ProcessingError as e:
            self._audit("manual_retry", tenant_id, message_id, actor, error=e)
            raise

        self._audit(
            "manual_retry",
            tenant_id,
            message_id,
            actor,
            metadata={"manual_retry_count": updated.manual_retry_count},
        )
        logger.info(
            "processing_manual_retry",
            tenant_id=tenant_id,
            message_id=message_id,
            actor=actor,
            manual_retry_count=updated.manual_retry_count,
        )
        return updated

    def permanently_fail(
        self, tenant_id: str, message_id: str, reason: str, actor: str = "system"
    ) -> ProcessingRecord:
        """Record an operator's final verdict on a dead-lettered record.

        The record stays DEAD_LETTERED; its reason is replaced and the
        verdict is noted in its metadata.
        """
        now = self._clock()

        def mutation(record: ProcessingRecord) -> None:
            record.dead_letter_reason = f"Permanently failed: {reason}"
            record.message_metadata["permanently_failed_by"] = actor
            record.message_metadata["permanently_failed_at"] = now.isoformat()

        try:
            updated = self.store.conditional_update(
                tenant_id,
                message_id,
                ProcessingStatus.DEAD_LETTERED,
                mutation,
                manual=True,
            )
        except ProcessingError as e:
            self._audit("permanently_failed", tenant_id, message_id, actor, error=e)
            raise

        self._audit(
            "permanently_failed",
            tenant_id,
            message_id,
            actor,
            metadata={"reason": reason},
        )
        return updated

    def stats(
        self, tenant_id: str, window: Optional[timedelta] = None
    ) -> ProcessingStats:
        """Counts and rates over records received within ``window``."""
        now = self._clock()
        since = now - window if window is not None else None
        records = self.store.find(tenant_id, RecordQuery(since=since))

        by_status = Counter(r.status.value for r in records)
        completed = [r for r in records if r.status == ProcessingStatus.COMPLETED]
        dead = [r for r in records if r.status == ProcessingStatus.DEAD_LETTERED]
        finished = (
            len(completed) + len(dead) + by_status[ProcessingStatus.CANCELLED.value]
        )
        dead_stamps = [r.dead_lettered_at for r in dead if r.dead_lettered_at]

        return ProcessingStats(
            tenant_id=tenant_id,
            window_start=since,
            window_end=now,
            total=len(records),
            by_status=dict(by_status),
            dead_letter_rate=(len(dead) / finished) if finished else 0.0,
            mean_attempts_to_success=(
                sum(r.attempt_count for r in completed) / len(completed)
                if completed
                else None
            ),
            dead_letters_by_type=dict(Counter(r.message_type for r in dead)),
            dead_letters_by_reason=dict(
                Counter(r.dead_letter_reason or "unknown" for r in dead)
            ),
            oldest_dead_letter_at=min(dead_stamps) if dead_stamps else None,
            newest_dead_letter_at=max(dead_stamps) if dead_stamps else None,
        )

    def _audit(
        self,
        action: str,
        tenant_id: str,
        message_id: str,
        actor: str,
        error: Optional[ProcessingError] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        event = create_audit_event(
            correlation_id=get_correlation_id() or str(uuid.uuid4()),
            action=action,
            tenant_id=tenant_id,
            resource_id=message_id,
            actor=actor,
            result="failure" if error else "success",
            error_type=type(error).__name__ if error else None,
            error_message=str(error) if error else None,
            metadata=metadata,
        )
        self._audit_sink(event)
