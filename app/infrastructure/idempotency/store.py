"""Processing record storage.

This module provides the storage interface for processing records and an
in-memory implementation. The abstract base class carries the
precondition and lifecycle checks so every backend enforces the same
rules; backends only supply atomic read/compare/write.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)

from infrastructure.idempotency.errors import ConcurrencyConflict, RecordNotFoundError
from infrastructure.idempotency.models import (
    MessagePriority,
    ProcessingRecord,
    ProcessingStatus,
    TERMINAL_STATUSES,
    utc_now,
    validate_write,
)
from infrastructure.logging import get_module_logger

logger = get_module_logger()

ExpectedStatus = Union[ProcessingStatus, Tuple[ProcessingStatus, ...]]
Mutation = Callable[[ProcessingRecord], Optional[ProcessingRecord]]
Clock = Callable[[], datetime]


@dataclass(frozen=True)
class RecordQuery:
    """Filter for operator queries over a tenant's records.

    Attributes:
        statuses: Only records in one of these statuses (None means any)
        message_type: Exact message type match
        source_topic: Exact source topic match
        since: Inclusive lower bound on ``time_field``
        until: Exclusive upper bound on ``time_field``
        time_field: Record datetime the window applies to
        limit: Maximum records returned
    """

    statuses: Optional[Tuple[ProcessingStatus, ...]] = None
    message_type: Optional[str] = None
    source_topic: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    time_field: str = "received_at"
    limit: Optional[int] = None

    def matches(self, record: ProcessingRecord) -> bool:
        if self.statuses is not None and record.status not in self.statuses:
            return False
        if self.message_type is not None and record.message_type != self.message_type:
            return False
        if self.source_topic is not None and record.source_topic != self.source_topic:
            return False
        if self.since is not None or self.until is not None:
            stamp = getattr(record, self.time_field)
            if stamp is None:
                return False
            if self.since is not None and stamp < self.since:
                return False
            if self.until is not None and stamp >= self.until:
                return False
        return True


def _as_tuple(expected_status: ExpectedStatus) -> Tuple[ProcessingStatus, ...]:
    if isinstance(expected_status, ProcessingStatus):
        return (expected_status,)
    return tuple(expected_status)


def retry_order(record: ProcessingRecord) -> Tuple[int, datetime]:
    """Sort key: priority descending, then next_retry_at ascending."""
    return (-int(record.priority), record.next_retry_at or record.received_at)


class ProcessingRecordStore(ABC):
    """Tenant-scoped durable store for processing records.

    Implementations must make ``try_create`` insert-if-absent and
    ``conditional_update`` compare-and-swap: concurrent callers never both
    observe success for the same key and precondition.

    Args:
        clock: Source of the current UTC time
        conflict_retries: Times a lost optimistic-version race is retried
            before ConcurrencyConflict is raised
    """

    def __init__(self, clock: Optional[Clock] = None, conflict_retries: int = 3):
        self._clock: Clock = clock or utc_now
        self.conflict_retries = conflict_retries

    def now(self) -> datetime:
        return self._clock()

    @abstractmethod
    def try_create(
        self,
        tenant_id: str,
        message_id: str,
        message_type: str,
        source_topic: str,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        priority: MessagePriority = MessagePriority.NORMAL,
        max_attempts: int = 3,
        message_hash: Optional[str] = None,
        payload: Any = None,
        schema_version: str = "1.0",
    ) -> Tuple[bool, ProcessingRecord]:
        """Insert a PENDING record unless one exists for the key.

        Returns:
            (created, record): the new record, or the existing one
        """

    @abstractmethod
    def get(self, tenant_id: str, message_id: str) -> Optional[ProcessingRecord]:
        """Return a copy of the record, or None if absent."""

    @abstractmethod
    def conditional_update(
        self,
        tenant_id: str,
        message_id: str,
        expected_status: ExpectedStatus,
        mutation: Mutation,
        *,
        expected_attempt_count: Optional[int] = None,
        manual: bool = False,
    ) -> ProcessingRecord:
        """Apply ``mutation`` if the stored record still matches.

        ``mutation`` receives a copy of the record and either edits it in
        place or returns a replacement.

        Args:
            expected_status: Status (or statuses) the record must be in
            expected_attempt_count: Attempt count the record must have
            manual: Allow the operator-only DEAD_LETTERED overrides

        Returns:
            The updated record

        Raises:
            ConcurrencyConflict: Preconditions failed; nothing was written
            RecordNotFoundError: No record exists for the key
            InvalidTransitionError, RecordInvariantError: The mutation
                breaks the record lifecycle
        """

    @abstractmethod
    def query_ready_for_retry(
        self, tenant_id: str, max_count: int, now: Optional[datetime] = None
    ) -> List[ProcessingRecord]:
        """FAILED records due for retry with budget left, highest priority first."""

    @abstractmethod
    def query_stale_processing(
        self, tenant_id: str, older_than: datetime, max_count: int
    ) -> List[ProcessingRecord]:
        """PROCESSING records started before ``older_than``."""

    @abstractmethod
    def find(self, tenant_id: str, query: RecordQuery) -> List[ProcessingRecord]:
        """Records matching ``query``, newest received first."""

    @abstractmethod
    def purge(
        self,
        tenant_id: str,
        retention_days: int,
        statuses: Iterable[ProcessingStatus] = TERMINAL_STATUSES,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete terminal records finished more than ``retention_days`` ago.

        Returns:
            Number of records deleted
        """

    @abstractmethod
    def acquire_lease(self, name: str, owner: str, ttl_seconds: int) -> bool:
        """Take the named lease unless another owner holds an unexpired one."""

    @abstractmethod
    def release_lease(self, name: str, owner: str) -> bool:
        """Release the named lease if ``owner`` holds it."""

    def _new_record(
        self,
        tenant_id: str,
        message_id: str,
        message_type: str,
        source_topic: str,
        metadata: Optional[Dict[str, Any]],
        priority: MessagePriority,
        max_attempts: int,
        message_hash: Optional[str],
        payload: Any,
        schema_version: str,
    ) -> ProcessingRecord:
        now = self.now()
        return ProcessingRecord(
            tenant_id=tenant_id,
            message_id=message_id,
            message_type=message_type,
            source_topic=source_topic,
            priority=MessagePriority(priority),
            max_attempts=max_attempts,
            message_hash=message_hash,
            message_metadata=dict(metadata or {}),
            message_payload=payload,
            schema_version=schema_version,
            received_at=now,
            updated_at=now,
            version=1,
        )

    def _check_preconditions(
        self,
        current: ProcessingRecord,
        expected_status: ExpectedStatus,
        expected_attempt_count: Optional[int],
    ) -> None:
        allowed = _as_tuple(expected_status)
        if current.status not in allowed:
            raise ConcurrencyConflict(
                f"expected status {[s.value for s in allowed]}, "
                f"found {current.status.value}",
                current=current.copy(),
            )
        if (
            expected_attempt_count is not None
            and current.attempt_count != expected_attempt_count
        ):
            raise ConcurrencyConflict(
                f"expected attempt {expected_attempt_count}, "
                f"found {current.attempt_count}",
                current=current.copy(),
            )

    def _apply_mutation(
        self, current: ProcessingRecord, mutation: Mutation, manual: bool
    ) -> ProcessingRecord:
        draft = current.copy()
        replaced = mutation(draft)
        updated = replaced if replaced is not None else draft
        validate_write(current, updated, manual=manual)
        updated.updated_at = self.now()
        updated.version = current.version + 1
        return updated

    @staticmethod
    def _purge_cutoff(retention_days: int, now: datetime) -> datetime:
        return now - timedelta(days=retention_days)


class InMemoryProcessingRecordStore(ProcessingRecordStore):
    """In-memory implementation of ProcessingRecordStore.

    Thread-safe: a single lock serializes every read-compare-write, so
    conditional updates are atomic within the process. Records are copied
    in and out so callers never share state with the store.

    Suitable for single-instance deployments, development and tests. For
    multi-instance deployments use the DynamoDB store.
    """

    def __init__(self, clock: Optional[Clock] = None, conflict_retries: int = 3):
        super().__init__(clock=clock, conflict_retries=conflict_retries)
        self._records: Dict[Tuple[str, str], ProcessingRecord] = {}
        self._leases: Dict[str, Tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def try_create(
        self,
        tenant_id: str,
        message_id: str,
        message_type: str,
        source_topic: str,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        priority: MessagePriority = MessagePriority.NORMAL,
        max_attempts: int = 3,
        message_hash: Optional[str] = None,
        payload: Any = None,
        schema_version: str = "1.0",
    ) -> Tuple[bool, ProcessingRecord]:
        with self._lock:
            existing = self._records.get((tenant_id, message_id))
            if existing is not None:
                return False, existing.copy()

            record = self._new_record(
                tenant_id,
                message_id,
                message_type,
                source_topic,
                metadata,
                priority,
                max_attempts,
                message_hash,
                payload,
                schema_version,
            )
            self._records[record.key] = record
            logger.debug(
                "processing_record_created",
                tenant_id=tenant_id,
                message_id=message_id,
                message_type=message_type,
            )
            return True, record.copy()

    def get(self, tenant_id: str, message_id: str) -> Optional[ProcessingRecord]:
        with self._lock:
            record = self._records.get((tenant_id, message_id))
            return record.copy() if record else None

    def conditional_update(
        self,
        tenant_id: str,
        message_id: str,
        expected_status: ExpectedStatus,
        mutation: Mutation,
        *,
        expected_attempt_count: Optional[int] = None,
        manual: bool = False,
    ) -> ProcessingRecord:
        with self._lock:
            current = self._records.get((tenant_id, message_id))
            if current is None:
                raise RecordNotFoundError(
                    f"no record for {tenant_id}/{message_id}"
                )
            self._check_preconditions(current, expected_status, expected_attempt_count)
            updated = self._apply_mutation(current, mutation, manual)
            self._records[updated.key] = updated
            return updated.copy()

    def query_ready_for_retry(
        self, tenant_id: str, max_count: int, now: Optional[datetime] = None
    ) -> List[ProcessingRecord]:
        now = now or self.now()
        with self._lock:
            due = [
                r.copy()
                for (tenant, _), r in self._records.items()
                if tenant == tenant_id
                and r.status == ProcessingStatus.FAILED
                and r.has_attempts_remaining
                and r.next_retry_at is not None
                and r.next_retry_at <= now
            ]
        due.sort(key=retry_order)
        return due[:max_count]

    def query_stale_processing(
        self, tenant_id: str, older_than: datetime, max_count: int
    ) -> List[ProcessingRecord]:
        with self._lock:
            stale = [
                r.copy()
                for (tenant, _), r in self._records.items()
                if tenant == tenant_id
                and r.status == ProcessingStatus.PROCESSING
                and r.processing_started_at is not None
                and r.processing_started_at < older_than
            ]
        stale.sort(key=lambda r: r.processing_started_at)
        return stale[:max_count]

    def find(self, tenant_id: str, query: RecordQuery) -> List[ProcessingRecord]:
        with self._lock:
            matched = [
                r.copy()
                for (tenant, _), r in self._records.items()
                if tenant == tenant_id and query.matches(r)
            ]
        matched.sort(key=lambda r: r.received_at, reverse=True)
        if query.limit is not None:
            matched = matched[: query.limit]
        return matched

    def purge(
        self,
        tenant_id: str,
        retention_days: int,
        statuses: Iterable[ProcessingStatus] = TERMINAL_STATUSES,
        now: Optional[datetime] = None,
    ) -> int:
        cutoff = self._purge_cutoff(retention_days, now or self.now())
        purgeable = set(statuses) & TERMINAL_STATUSES
        with self._lock:
            expired = [
                key
                for key, r in self._records.items()
                if key[0] == tenant_id
                and r.status in purgeable
                and r.finished_at is not None
                and r.finished_at < cutoff
            ]
            for key in expired:
                del self._records[key]
        if expired:
            logger.info(
                "processing_records_purged",
                tenant_id=tenant_id,
                count=len(expired),
                cutoff=cutoff.isoformat(),
            )
        return len(expired)

    def acquire_lease(self, name: str, owner: str, ttl_seconds: int) -> bool:
        now = self.now()
        with self._lock:
            held = self._leases.get(name)
            if held is not None and held[0] != owner and held[1] > now:
                return False
            self._leases[name] = (owner, now + timedelta(seconds=ttl_seconds))
            return True

    def release_lease(self, name: str, owner: str) -> bool:
        with self._lock:
            held = self._leases.get(name)
            if held is None or held[0] != owner:
                return False
            del self._leases[name]
            return True
