"""Background retry sweep.

Resubmits FAILED records whose retry time has come, PROCESSING records
whose worker went silent and PENDING records an operator put back with
a manual retry, through the coordinator. Payloads are taken from the
record and the work function from a registry keyed by message type, so
the sweep can resume work no caller is waiting on.

A sweep is single-flight per tenant: a store lease keeps other processes
out and a per-tenant lock keeps other threads of this process out.
"""

import socket
import threading
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from infrastructure.idempotency.models import (
    ProcessingRecord,
    ProcessingStatus,
)
from infrastructure.idempotency.errors import StoreError
from infrastructure.idempotency.options import ExecutionOptions
from infrastructure.idempotency.outcomes import OutcomeKind
from infrastructure.idempotency.store import RecordQuery
from infrastructure.logging import bind_processing_context, get_module_logger

if TYPE_CHECKING:
    from infrastructure.configuration import Settings
    from infrastructure.idempotency.coordinator import IdempotencyCoordinator

logger = get_module_logger()

SWEEP_LEASE_PREFIX = "retry-sweep#"


@dataclass(frozen=True)
class RegisteredHandler:
    """Work function (and options) used to resume one message type."""

    work_fn: Callable[[Any], Any]
    options: Optional[ExecutionOptions] = None


class HandlerRegistry:
    """Maps message types to the work functions that process them.

    Example:
        registry = HandlerRegistry()
        registry.register("cdm.ingest", service.process)
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, RegisteredHandler] = {}
        self._lock = threading.Lock()

    def register(
        self,
        message_type: str,
        work_fn: Callable[[Any], Any],
        options: Optional[ExecutionOptions] = None,
    ) -> None:
        with self._lock:
            self._handlers[message_type] = RegisteredHandler(work_fn, options)
        logger.debug("retry_handler_registered", message_type=message_type)

    def get(self, message_type: str) -> Optional[RegisteredHandler]:
        with self._lock:
            return self._handlers.get(message_type)

    def __contains__(self, message_type: str) -> bool:
        return self.get(message_type) is not None


def _empty_stats() -> Dict[str, Any]:
    return {
        "processed": 0,
        "completed": 0,
        "retried": 0,
        "dead_lettered": 0,
        "rejected": 0,
        "skipped": 0,
        "errors": 0,
    }


class RetrySweeper:
    """Periodic resubmission of due and stale records for a tenant.

    Attributes:
        coordinator: Coordinator the records are resubmitted through
        registry: Work functions per message type
        batch_size: Maximum records handled by one run
        lease_seconds: Lifetime of the cross-process sweep lease
        retention_days: Age after which completed and cancelled records go
        dead_letter_retention_days: Age after which dead letters go
        worker_id: Lease owner identity of this sweeper
    """

    def __init__(
        self,
        coordinator: "IdempotencyCoordinator",
        registry: HandlerRegistry,
        batch_size: int = 100,
        lease_seconds: int = 300,
        retention_days: int = 30,
        dead_letter_retention_days: int = 90,
        worker_id: Optional[str] = None,
    ) -> None:
        self.coordinator = coordinator
        self.store = coordinator.store
        self.registry = registry
        self.batch_size = batch_size
        self.lease_seconds = lease_seconds
        self.retention_days = retention_days
        self.dead_letter_retention_days = dead_letter_retention_days
        self.worker_id = worker_id or f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"
        self._tenant_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.log = logger.bind(component="retry_sweeper", worker_id=self.worker_id)

    @classmethod
    def from_settings(
        cls,
        coordinator: "IdempotencyCoordinator",
        registry: HandlerRegistry,
        settings: "Settings",
        worker_id: Optional[str] = None,
    ) -> "RetrySweeper":
        return cls(
            coordinator,
            registry,
            batch_size=settings.processing.sweep_batch_size,
            lease_seconds=settings.processing.sweep_lease_seconds,
            retention_days=settings.processing.retention_days,
            dead_letter_retention_days=settings.dead_letter.retention_days,
            worker_id=worker_id,
        )

    def _tenant_lock(self, tenant_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._tenant_locks.setdefault(tenant_id, threading.Lock())

    def run_once(self, tenant_id: str) -> Dict[str, Any]:
        """Run one sweep for a tenant.

        Returns:
            Dictionary with sweep statistics:
                - processed: Records resubmitted
                - completed, retried, dead_lettered, rejected: Outcomes
                - skipped: Records with no handler or no stored payload
                - errors: Records whose resubmission raised
                - sweep_skipped: True when another sweep held the tenant
        """
        stats = _empty_stats()
        lock = self._tenant_lock(tenant_id)
        if not lock.acquire(blocking=False):
            self.log.debug("retry_sweep_already_running", tenant_id=tenant_id)
            return {**stats, "sweep_skipped": True}

        lease_name = f"{SWEEP_LEASE_PREFIX}{tenant_id}"
        try:
            if not self.store.acquire_lease(
                lease_name, self.worker_id, self.lease_seconds
            ):
                self.log.info("retry_sweep_lease_held", tenant_id=tenant_id)
                return {**stats, "sweep_skipped": True}
            try:
                self._sweep(tenant_id, stats)
            finally:
                self.store.release_lease(lease_name, self.worker_id)
        finally:
            lock.release()

        self.log.info("retry_sweep_complete", tenant_id=tenant_id, **stats)
        return {**stats, "sweep_skipped": False}

    def _sweep(self, tenant_id: str, stats: Dict[str, Any]) -> None:
        records = self.store.query_ready_for_retry(tenant_id, self.batch_size)
        remaining = self.batch_size - len(records)
        if remaining > 0:
            liveness = self.coordinator.default_options.liveness_window_seconds
            older_than = self.store.now() - timedelta(seconds=liveness)
            records.extend(
                self.store.query_stale_processing(tenant_id, older_than, remaining)
            )
        remaining = self.batch_size - len(records)
        if remaining > 0:
            records.extend(self._manually_reset(tenant_id)[:remaining])

        if not records:
            self.log.debug("retry_sweep_no_records", tenant_id=tenant_id)
            return

        self.log.info(
            "retry_sweep_start", tenant_id=tenant_id, record_count=len(records)
        )
        for record in records:
            self._resubmit(record, stats)

    def _manually_reset(self, tenant_id: str) -> List[ProcessingRecord]:
        """PENDING records put back by an operator, oldest reset first."""
        pending = self.store.find(
            tenant_id, RecordQuery(statuses=(ProcessingStatus.PENDING,))
        )
        reset = [r for r in pending if r.manual_retry_count > 0]
        reset.sort(key=lambda r: r.last_manual_retry_at or r.updated_at)
        return reset

    def _resubmit(self, record: ProcessingRecord, stats: Dict[str, Any]) -> None:
        handler = self.registry.get(record.message_type)
        if handler is None or record.message_payload is None:
            self.log.warning(
                "retry_sweep_record_skipped",
                tenant_id=record.tenant_id,
                message_id=record.message_id,
                message_type=record.message_type,
                reason="no_handler" if handler is None else "no_payload",
            )
            stats["skipped"] += 1
            return

        with bind_processing_context(
            tenant_id=record.tenant_id,
            message_id=record.message_id,
            sweep_worker_id=self.worker_id,
        ):
            try:
                outcome = self.coordinator.execute(
                    record.tenant_id,
                    record.message_id,
                    record.message_type,
                    record.source_topic,
                    record.message_payload,
                    handler.work_fn,
                    handler.options,
                )
            except StoreError as e:
                self.log.error(
                    "retry_sweep_resubmit_failed",
                    tenant_id=record.tenant_id,
                    message_id=record.message_id,
                    error=str(e),
                    exc_info=True,
                )
                stats["errors"] += 1
                return

        stats["processed"] += 1
        if outcome.kind == OutcomeKind.COMPLETED:
            stats["completed"] += 1
        elif outcome.kind == OutcomeKind.FAILED:
            stats["retried"] += 1
        elif outcome.kind == OutcomeKind.DEAD_LETTERED:
            stats["dead_lettered"] += 1
        else:
            stats["rejected"] += 1

    def purge_expired(self, tenant_id: str) -> Dict[str, int]:
        """Apply retention to a tenant's terminal records.

        Completed and cancelled records use ``retention_days``; dead
        letters use ``dead_letter_retention_days``.
        """
        finished = self.store.purge(
            tenant_id,
            self.retention_days,
            statuses=(ProcessingStatus.COMPLETED, ProcessingStatus.CANCELLED),
        )
        dead = self.store.purge(
            tenant_id,
            self.dead_letter_retention_days,
            statuses=(ProcessingStatus.DEAD_LETTERED,),
        )
        self.log.info(
            "retention_purge_complete",
            tenant_id=tenant_id,
            finished_purged=finished,
            dead_letters_purged=dead,
        )
        return {"finished": finished, "dead_lettered": dead}
