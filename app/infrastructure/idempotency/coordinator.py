"""Idempotency coordinator: check, execute and finalize keyed units of work.

The coordinator is stateless. Every decision is taken against the record
store through conditional updates, so any number of threads or processes
may call ``execute`` for the same key and at most one of them runs the
work for a given attempt.

Usage:
    coordinator = IdempotencyCoordinator(store)

    outcome = coordinator.execute(
        tenant_id="tenant-a",
        message_id="order-42",
        message_type="orders.created",
        source_topic="orders",
        payload={"order_id": 42},
        work_fn=handle_order,
    )
    if outcome.is_completed:
        return outcome.result
"""

import asyncio
import contextvars
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Any, Callable, Optional, Union

from infrastructure.idempotency.classifiers import default_failure_classifier
from infrastructure.idempotency.errors import (
    ConcurrencyConflict,
    format_exception_details,
)
from infrastructure.idempotency.hashing import content_hash
from infrastructure.idempotency.models import (
    ProcessingRecord,
    ProcessingStatus,
    utc_now,
)
from infrastructure.idempotency.options import (
    ExecutionOptions,
    FailureKind,
    PayloadMismatchPolicy,
)
from infrastructure.idempotency.outcomes import ExecutionOutcome, RejectionReason
from infrastructure.idempotency.store import ProcessingRecordStore
from infrastructure.logging import bind_processing_context, get_module_logger
from infrastructure.resilience.dead_letter.manager import DeadLetterManager
from infrastructure.resilience.retry.scheduler import RetryScheduler

logger = get_module_logger()

WorkFn = Callable[[Any], Any]

WORKER_LOST_REASON = "worker lost during final attempt"


class _WorkTimedOut(Exception):
    """The work function overran its timeout."""


class IdempotencyCoordinator:
    """Runs units of work at most once to completion per (tenant, message id).

    Attributes:
        store: Record store holding all coordination state
        scheduler: Computes next retry times for transient failures
        dead_letters: Handles terminal failures
        default_options: Options used when ``execute`` gets none
        max_conflict_restarts: Times a lost claim race is re-inspected
            before the call is rejected
    """

    def __init__(
        self,
        store: ProcessingRecordStore,
        scheduler: Optional[RetryScheduler] = None,
        dead_letters: Optional[DeadLetterManager] = None,
        default_options: Optional[ExecutionOptions] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_conflict_restarts: int = 3,
        max_workers: int = 8,
    ) -> None:
        self._clock = clock or utc_now
        self.store = store
        self.scheduler = scheduler or RetryScheduler(clock=self._clock)
        self.dead_letters = dead_letters or DeadLetterManager(store, clock=self._clock)
        self.default_options = default_options or ExecutionOptions()
        self.max_conflict_restarts = max_conflict_restarts
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    @classmethod
    def from_settings(
        cls,
        store: ProcessingRecordStore,
        settings,
        clock: Optional[Callable[[], datetime]] = None,
        dead_letters: Optional[DeadLetterManager] = None,
        **kwargs,
    ) -> "IdempotencyCoordinator":
        if dead_letters is None:
            dead_letters = DeadLetterManager.from_settings(store, settings, clock=clock)
        return cls(
            store,
            scheduler=RetryScheduler.from_settings(settings, clock=clock),
            dead_letters=dead_letters,
            default_options=ExecutionOptions.from_settings(settings),
            clock=clock,
            **kwargs,
        )

    # Queries

    def get_record(self, tenant_id: str, message_id: str) -> Optional[ProcessingRecord]:
        return self.store.get(tenant_id, message_id)

    def is_processed(self, tenant_id: str, message_id: str) -> bool:
        """True once the key has completed."""
        record = self.store.get(tenant_id, message_id)
        return record is not None and record.status == ProcessingStatus.COMPLETED

    def cancel(
        self, tenant_id: str, message_id: str, reason: str = "Cancelled by request"
    ) -> ProcessingRecord:
        """Cancel a PENDING or FAILED record.

        Raises:
            ConcurrencyConflict: The record is processing or already terminal
            RecordNotFoundError: No record exists for the key
        """
        now = self._clock()

        def mutation(record: ProcessingRecord) -> None:
            record.status = ProcessingStatus.CANCELLED
            record.next_retry_at = None
            record.processing_completed_at = now
            record.error_message = reason

        updated = self.store.conditional_update(
            tenant_id,
            message_id,
            (ProcessingStatus.PENDING, ProcessingStatus.FAILED),
            mutation,
        )
        logger.info(
            "processing_cancelled",
            tenant_id=tenant_id,
            message_id=message_id,
            attempt_count=updated.attempt_count,
            reason=reason,
        )
        return updated

    # Execution

    def execute(
        self,
        tenant_id: str,
        message_id: str,
        message_type: str,
        source_topic: str,
        payload: Any,
        work_fn: WorkFn,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionOutcome:
        """Run ``work_fn(payload)`` unless the key has already been handled.

        Returns:
            Completed with the (possibly cached) result, Rejected with a
            reason, Failed with the next retry time, or DeadLettered
        """
        opts = options or self.default_options
        message_hash = content_hash(payload)

        with bind_processing_context(
            tenant_id=tenant_id, message_id=message_id, message_type=message_type
        ):
            created, record = self.store.try_create(
                tenant_id,
                message_id,
                message_type,
                source_topic,
                dict(opts.metadata),
                priority=opts.priority,
                max_attempts=opts.max_attempts,
                message_hash=message_hash,
                payload=payload if opts.store_payload else None,
                schema_version=opts.schema_version,
            )
            if created:
                logger.info("processing_record_received", attempt_count=0)

            claimed: Optional[ProcessingRecord] = None
            for _ in range(self.max_conflict_restarts + 1):
                try:
                    decision = self._inspect_and_claim(
                        record, message_hash, payload, opts
                    )
                except ConcurrencyConflict:
                    logger.debug("processing_claim_race_lost")
                    latest = self.store.get(tenant_id, message_id)
                    if latest is None:
                        created, latest = self.store.try_create(
                            tenant_id,
                            message_id,
                            message_type,
                            source_topic,
                            dict(opts.metadata),
                            priority=opts.priority,
                            max_attempts=opts.max_attempts,
                            message_hash=message_hash,
                            payload=payload if opts.store_payload else None,
                            schema_version=opts.schema_version,
                        )
                    record = latest
                    continue
                if isinstance(decision, ExecutionOutcome):
                    return decision
                claimed = decision
                break

            if claimed is None:
                logger.warning("processing_claim_abandoned")
                return ExecutionOutcome.rejected(
                    tenant_id,
                    message_id,
                    RejectionReason.CONCURRENCY_CONFLICT,
                    attempt_count=record.attempt_count,
                )

            return self._run(claimed, payload, work_fn, opts)

    def _inspect_and_claim(
        self,
        record: ProcessingRecord,
        message_hash: str,
        payload: Any,
        opts: ExecutionOptions,
    ) -> Union[ExecutionOutcome, ProcessingRecord]:
        """Decide what to do with an existing record.

        Returns an outcome when the call ends here, or the record after
        this caller claimed it for processing.

        Raises:
            ConcurrencyConflict: Another caller changed the record first
        """
        tenant_id, message_id = record.key
        now = self._clock()

        if record.message_hash and record.message_hash != message_hash:
            if opts.payload_mismatch_policy == PayloadMismatchPolicy.REJECT:
                logger.warning(
                    "processing_payload_mismatch",
                    attempt_count=record.attempt_count,
                    stored_hash=record.message_hash,
                    incoming_hash=message_hash,
                )
                return ExecutionOutcome.rejected(
                    tenant_id,
                    message_id,
                    RejectionReason.PAYLOAD_MISMATCH,
                    attempt_count=record.attempt_count,
                )
            if not record.is_terminal:
                record = self._replace_payload(record, message_hash, payload, opts)

        status = record.status

        if status == ProcessingStatus.COMPLETED:
            logger.info("processing_replayed", attempt_count=record.attempt_count)
            return ExecutionOutcome.completed(
                tenant_id,
                message_id,
                record.processing_result,
                attempt_count=record.attempt_count,
            )

        if status == ProcessingStatus.DEAD_LETTERED:
            return ExecutionOutcome.dead_lettered(
                tenant_id,
                message_id,
                record.dead_letter_reason or "",
                attempt_count=record.attempt_count,
                error_message=record.error_message,
            )

        if status == ProcessingStatus.CANCELLED:
            return ExecutionOutcome.rejected(
                tenant_id,
                message_id,
                RejectionReason.CANCELLED,
                attempt_count=record.attempt_count,
            )

        if status == ProcessingStatus.PROCESSING:
            started = record.processing_started_at or record.updated_at
            if (now - started).total_seconds() < opts.liveness_window_seconds:
                return ExecutionOutcome.rejected(
                    tenant_id,
                    message_id,
                    RejectionReason.IN_PROGRESS,
                    attempt_count=record.attempt_count,
                )
            return self._reclaim(record, now)

        if status == ProcessingStatus.FAILED:
            if not record.has_attempts_remaining:
                return ExecutionOutcome.rejected(
                    tenant_id,
                    message_id,
                    RejectionReason.EXHAUSTED,
                    attempt_count=record.attempt_count,
                    error_message=record.error_message,
                )
            if record.next_retry_at is not None and now < record.next_retry_at:
                return ExecutionOutcome.rejected(
                    tenant_id,
                    message_id,
                    RejectionReason.NOT_YET_DUE,
                    retry_at=record.next_retry_at,
                    attempt_count=record.attempt_count,
                )

        return self._claim(record, now)

    def _replace_payload(
        self,
        record: ProcessingRecord,
        message_hash: str,
        payload: Any,
        opts: ExecutionOptions,
    ) -> ProcessingRecord:
        def mutation(draft: ProcessingRecord) -> None:
            draft.message_hash = message_hash
            if opts.store_payload:
                draft.message_payload = payload

        updated = self.store.conditional_update(
            record.tenant_id,
            record.message_id,
            record.status,
            mutation,
            expected_attempt_count=record.attempt_count,
        )
        logger.info(
            "processing_payload_replaced",
            attempt_count=updated.attempt_count,
            message_hash=message_hash,
        )
        return updated

    def _claim(self, record: ProcessingRecord, now: datetime) -> ProcessingRecord:
        """PENDING/FAILED -> PROCESSING, guarded by the attempt count seen."""

        def mutation(draft: ProcessingRecord) -> None:
            draft.status = ProcessingStatus.PROCESSING
            draft.attempt_count += 1
            draft.processing_started_at = now
            draft.processing_completed_at = None
            draft.processing_duration_ms = None
            draft.next_retry_at = None

        claimed = self.store.conditional_update(
            record.tenant_id,
            record.message_id,
            record.status,
            mutation,
            expected_attempt_count=record.attempt_count,
        )
        logger.info(
            "processing_started",
            attempt_count=claimed.attempt_count,
            max_attempts=claimed.max_attempts,
        )
        return claimed

    def _reclaim(
        self, record: ProcessingRecord, now: datetime
    ) -> Union[ExecutionOutcome, ProcessingRecord]:
        """Take over a PROCESSING record whose worker went silent."""
        tenant_id, message_id = record.key

        if not record.has_attempts_remaining:
            updated = self.dead_letters.mark_dead(
                tenant_id,
                message_id,
                WORKER_LOST_REASON,
                expected_status=ProcessingStatus.PROCESSING,
                expected_attempt_count=record.attempt_count,
                error_message="Worker lost during final attempt",
            )
            return self._terminal_outcome(updated)

        def mutation(draft: ProcessingRecord) -> None:
            draft.attempt_count += 1
            draft.processing_started_at = now
            draft.next_retry_at = None

        claimed = self.store.conditional_update(
            tenant_id,
            message_id,
            ProcessingStatus.PROCESSING,
            mutation,
            expected_attempt_count=record.attempt_count,
        )
        logger.warning(
            "processing_reclaimed",
            attempt_count=claimed.attempt_count,
            stale_since=record.processing_started_at.isoformat()
            if record.processing_started_at
            else None,
        )
        return claimed

    def _run(
        self,
        claimed: ProcessingRecord,
        payload: Any,
        work_fn: WorkFn,
        opts: ExecutionOptions,
    ) -> ExecutionOutcome:
        started = time.monotonic()
        try:
            result = self._invoke(work_fn, payload, opts.timeout_seconds)
        except _WorkTimedOut:
            logger.warning(
                "processing_timed_out",
                attempt_count=claimed.attempt_count,
                timeout_seconds=opts.timeout_seconds,
            )
            return ExecutionOutcome.rejected(
                claimed.tenant_id,
                claimed.message_id,
                RejectionReason.TIMED_OUT,
                attempt_count=claimed.attempt_count,
                invoked=True,
            )
        # asyncio.CancelledError is a BaseException and would skip Exception
        except (Exception, asyncio.CancelledError) as exc:  # pylint: disable=broad-except
            duration_ms = int((time.monotonic() - started) * 1000)
            return self._handle_failure(claimed, exc, opts, duration_ms)

        duration_ms = int((time.monotonic() - started) * 1000)
        return self._complete(claimed, result, duration_ms)

    def _invoke(self, work_fn: WorkFn, payload: Any, timeout: Optional[float]) -> Any:
        if timeout is None:
            return work_fn(payload)

        # Logging context travels with the work into the pool thread
        context = contextvars.copy_context()
        future: Future = self._pool().submit(context.run, work_fn, payload)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            if future.done():
                raise
            future.cancel()
            raise _WorkTimedOut() from None

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="processing-work"
            )
        return self._executor

    def shutdown(self, wait: bool = True) -> None:
        """Stop the timeout thread pool, if one was started."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _complete(
        self, claimed: ProcessingRecord, result: Any, duration_ms: int
    ) -> ExecutionOutcome:
        now = self._clock()

        def mutation(draft: ProcessingRecord) -> None:
            draft.status = ProcessingStatus.COMPLETED
            draft.processing_result = result
            draft.processing_completed_at = now
            draft.processing_duration_ms = duration_ms
            draft.error_message = None
            draft.exception_details = None
            draft.next_retry_at = None

        try:
            self.store.conditional_update(
                claimed.tenant_id,
                claimed.message_id,
                ProcessingStatus.PROCESSING,
                mutation,
                expected_attempt_count=claimed.attempt_count,
            )
        except ConcurrencyConflict:
            return self._ownership_lost(claimed)

        logger.info(
            "processing_completed",
            attempt_count=claimed.attempt_count,
            duration_ms=duration_ms,
        )
        return ExecutionOutcome.completed(
            claimed.tenant_id,
            claimed.message_id,
            result,
            attempt_count=claimed.attempt_count,
            invoked=True,
        )

    def _handle_failure(
        self,
        claimed: ProcessingRecord,
        exc: Exception,
        opts: ExecutionOptions,
        duration_ms: int,
    ) -> ExecutionOutcome:
        classifier = opts.failure_classifier or default_failure_classifier
        kind = classifier(exc)
        attempt = claimed.attempt_count
        message = str(exc)
        error_message = message or type(exc).__name__
        details = format_exception_details(exc, {"failure_kind": kind.value})

        if kind == FailureKind.CANCELLED:
            error_message = (
                "Cancelled" if message in ("", "Cancelled") else f"Cancelled: {message}"
            )
            if not opts.cancellation_consumes_attempt:
                return self._schedule_retry(
                    claimed, attempt - 1, error_message, details, opts, duration_ms
                )

        if kind == FailureKind.PERMANENT:
            reason = f"Permanent failure: {error_message}"
        elif attempt >= claimed.max_attempts:
            reason = f"Exhausted {attempt} attempts: {error_message}"
        else:
            return self._schedule_retry(
                claimed, attempt, error_message, details, opts, duration_ms
            )

        logger.warning(
            "processing_failed_terminally",
            attempt_count=attempt,
            failure_kind=kind.value,
            error=error_message,
        )
        try:
            updated = self.dead_letters.mark_dead(
                claimed.tenant_id,
                claimed.message_id,
                reason,
                expected_status=ProcessingStatus.PROCESSING,
                expected_attempt_count=attempt,
                error_message=error_message,
                exception_details=details,
            )
        except ConcurrencyConflict:
            return self._ownership_lost(claimed)
        return self._terminal_outcome(updated, invoked=True)

    def _schedule_retry(
        self,
        claimed: ProcessingRecord,
        attempt_count: int,
        error_message: str,
        details: str,
        opts: ExecutionOptions,
        duration_ms: int,
    ) -> ExecutionOutcome:
        now = self._clock()
        retry_at = self.scheduler.next_retry_at(
            max(attempt_count, 1),
            base_delay=opts.base_delay_seconds,
            max_delay=opts.max_delay_seconds,
            jitter_ratio=opts.jitter_ratio,
            now=now,
        )

        def mutation(draft: ProcessingRecord) -> None:
            draft.status = ProcessingStatus.FAILED
            draft.attempt_count = attempt_count
            draft.error_message = error_message
            draft.exception_details = details
            draft.next_retry_at = retry_at
            draft.retry_delay_seconds = (retry_at - now).total_seconds()
            draft.processing_duration_ms = duration_ms

        try:
            self.store.conditional_update(
                claimed.tenant_id,
                claimed.message_id,
                ProcessingStatus.PROCESSING,
                mutation,
                expected_attempt_count=claimed.attempt_count,
            )
        except ConcurrencyConflict:
            return self._ownership_lost(claimed)

        logger.warning(
            "processing_failed_will_retry",
            attempt_count=attempt_count,
            next_retry_at=retry_at.isoformat(),
            error=error_message,
        )
        return ExecutionOutcome.failed(
            claimed.tenant_id,
            claimed.message_id,
            retry_at,
            error_message=error_message,
            attempt_count=attempt_count,
            invoked=True,
        )

    def _terminal_outcome(
        self, record: ProcessingRecord, invoked: bool = False
    ) -> ExecutionOutcome:
        if record.status == ProcessingStatus.DEAD_LETTERED:
            return ExecutionOutcome.dead_lettered(
                record.tenant_id,
                record.message_id,
                record.dead_letter_reason or "",
                error_message=record.error_message,
                attempt_count=record.attempt_count,
                invoked=invoked,
            )
        # Dead-letter queue disabled: parked FAILED with a closed budget
        return ExecutionOutcome.rejected(
            record.tenant_id,
            record.message_id,
            RejectionReason.EXHAUSTED,
            error_message=record.error_message,
            attempt_count=record.attempt_count,
            invoked=invoked,
        )

    def _ownership_lost(self, claimed: ProcessingRecord) -> ExecutionOutcome:
        logger.warning("processing_ownership_lost", attempt_count=claimed.attempt_count)
        return ExecutionOutcome.rejected(
            claimed.tenant_id,
            claimed.message_id,
            RejectionReason.OWNERSHIP_LOST,
            attempt_count=claimed.attempt_count,
            invoked=True,
        )
