"""DynamoDB processing record store."""

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from infrastructure.clients.aws.dynamodb import DynamoDBClient
from infrastructure.idempotency.codec import decode_value, encode_value
from infrastructure.idempotency.errors import (
    ConcurrencyConflict,
    RecordNotFoundError,
    StoreError,
)
from infrastructure.idempotency.models import (
    MessagePriority,
    ProcessingRecord,
    ProcessingStatus,
    TERMINAL_STATUSES,
)
from infrastructure.idempotency.store import (
    Clock,
    ExpectedStatus,
    Mutation,
    ProcessingRecordStore,
    RecordQuery,
    retry_order,
)
from infrastructure.logging import get_module_logger
from infrastructure.operations.result import OperationResult

logger = get_module_logger()

PARTITION_KEY = "tenant_id"
SORT_KEY = "message_id"
LEASE_PARTITION = "__leases__"
LEASE_PREFIX = "__lease__#"

# Caller-supplied values, stored with their Python types intact
OPAQUE_FIELDS = ("message_payload", "message_metadata", "processing_result")


def _s(value: str) -> Dict[str, str]:
    return {"S": value}


def _n(value: Any) -> Dict[str, str]:
    return {"N": str(value)}


def _record_json(record: ProcessingRecord) -> str:
    """Serialize a record, raising StoreError for values that cannot be kept."""
    try:
        data = record.to_dict()
        for name in OPAQUE_FIELDS:
            data[name] = getattr(record, name)
        return json.dumps(encode_value(data))
    except (TypeError, ValueError) as e:
        logger.error(
            "processing_record_serialization_error",
            tenant_id=record.tenant_id,
            message_id=record.message_id,
            status=record.status.value,
            error=str(e),
        )
        raise StoreError(
            f"record {record.tenant_id}/{record.message_id} cannot be stored: {e}",
            diagnostics={"status": record.status.value},
        ) from e


class DynamoDBProcessingRecordStore(ProcessingRecordStore):
    """DynamoDB-backed processing record store.

    Table layout:
    - PK: tenant_id (string), SK: message_id (string)
    - status, attempt_count, version: top-level attributes used in
      condition expressions
    - record_json: the full record serialized as JSON

    Every write is conditional. Creation uses ``attribute_not_exists`` and
    updates require the stored ``version`` to match the one read, so two
    instances can never both win the same transition. Leases live in a
    reserved partition so tenant queries never see them.

    Args:
        client: DynamoDBClient returning OperationResult
        table_name: Table holding processing records
        clock: Source of the current UTC time
        conflict_retries: Times a lost version race is retried
    """

    def __init__(
        self,
        client: DynamoDBClient,
        table_name: str = "processing_records",
        clock: Optional[Clock] = None,
        conflict_retries: int = 3,
    ):
        super().__init__(clock=clock, conflict_retries=conflict_retries)
        self.client = client
        self.table_name = table_name
        logger.info("initialized_dynamodb_record_store", table_name=table_name)

    # Serialization

    @staticmethod
    def _key(tenant_id: str, message_id: str) -> Dict[str, Any]:
        return {PARTITION_KEY: _s(tenant_id), SORT_KEY: _s(message_id)}

    @staticmethod
    def _to_item(record: ProcessingRecord) -> Dict[str, Any]:
        item = {
            PARTITION_KEY: _s(record.tenant_id),
            SORT_KEY: _s(record.message_id),
            "status": _s(record.status.value),
            "attempt_count": _n(record.attempt_count),
            "priority": _n(int(record.priority)),
            "version": _n(record.version),
            "record_json": _s(_record_json(record)),
        }
        if record.next_retry_at is not None:
            item["next_retry_at"] = _s(record.next_retry_at.isoformat())
        return item

    @staticmethod
    def _from_item(item: Dict[str, Any]) -> ProcessingRecord:
        return ProcessingRecord.from_dict(
            decode_value(json.loads(item["record_json"]["S"]))
        )

    def _raise_for(self, result: OperationResult, operation: str) -> None:
        logger.error(
            "processing_store_error",
            operation=operation,
            table_name=self.table_name,
            error=result.message,
            error_code=result.error_code,
        )
        raise StoreError(
            f"{operation} failed: {result.message}",
            diagnostics={"error_code": result.error_code, "status": result.status.value},
        )

    def _query_tenant(self, tenant_id: str) -> List[ProcessingRecord]:
        result = self.client.query(
            self.table_name,
            KeyConditionExpression="#pk = :pk",
            ExpressionAttributeNames={"#pk": PARTITION_KEY},
            ExpressionAttributeValues={":pk": _s(tenant_id)},
            ConsistentRead=True,
        )
        if not result.is_success:
            self._raise_for(result, "query")
        return [self._from_item(item) for item in result.data or []]

    # Records

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
        result = self.client.put_item(
            self.table_name,
            Item=self._to_item(record),
            ConditionExpression="attribute_not_exists(#sk)",
            ExpressionAttributeNames={"#sk": SORT_KEY},
        )
        if result.is_success:
            logger.debug(
                "processing_record_created",
                tenant_id=tenant_id,
                message_id=message_id,
                message_type=message_type,
            )
            return True, record
        if not result.is_conflict:
            self._raise_for(result, "put_item")

        existing = self.get(tenant_id, message_id)
        if existing is None:
            # Purged between our put and get
            raise ConcurrencyConflict(f"record {tenant_id}/{message_id} vanished")
        return False, existing

    def get(self, tenant_id: str, message_id: str) -> Optional[ProcessingRecord]:
        result = self.client.get_item(
            self.table_name,
            Key=self._key(tenant_id, message_id),
            ConsistentRead=True,
        )
        if not result.is_success:
            self._raise_for(result, "get_item")
        item = (result.data or {}).get("Item")
        return self._from_item(item) if item else None

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
        for attempt in range(self.conflict_retries + 1):
            current = self.get(tenant_id, message_id)
            if current is None:
                raise RecordNotFoundError(f"no record for {tenant_id}/{message_id}")
            self._check_preconditions(current, expected_status, expected_attempt_count)
            updated = self._apply_mutation(current, mutation, manual)

            result = self.client.put_item(
                self.table_name,
                Item=self._to_item(updated),
                ConditionExpression="#v = :expected",
                ExpressionAttributeNames={"#v": "version"},
                ExpressionAttributeValues={":expected": _n(current.version)},
            )
            if result.is_success:
                return updated
            if not result.is_conflict:
                self._raise_for(result, "put_item")

            logger.debug(
                "processing_record_version_race",
                tenant_id=tenant_id,
                message_id=message_id,
                attempt=attempt + 1,
            )

        raise ConcurrencyConflict(
            f"record {tenant_id}/{message_id} kept changing during update"
        )

    def query_ready_for_retry(
        self, tenant_id: str, max_count: int, now: Optional[datetime] = None
    ) -> List[ProcessingRecord]:
        now = now or self.now()
        due = [
            r
            for r in self._query_tenant(tenant_id)
            if r.status == ProcessingStatus.FAILED
            and r.has_attempts_remaining
            and r.next_retry_at is not None
            and r.next_retry_at <= now
        ]
        due.sort(key=retry_order)
        return due[:max_count]

    def query_stale_processing(
        self, tenant_id: str, older_than: datetime, max_count: int
    ) -> List[ProcessingRecord]:
        stale = [
            r
            for r in self._query_tenant(tenant_id)
            if r.status == ProcessingStatus.PROCESSING
            and r.processing_started_at is not None
            and r.processing_started_at < older_than
        ]
        stale.sort(key=lambda r: r.processing_started_at)
        return stale[:max_count]

    def find(self, tenant_id: str, query: RecordQuery) -> List[ProcessingRecord]:
        matched = [r for r in self._query_tenant(tenant_id) if query.matches(r)]
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
        deleted = 0
        for record in self._query_tenant(tenant_id):
            if record.status not in purgeable:
                continue
            if record.finished_at is None or record.finished_at >= cutoff:
                continue
            result = self.client.delete_item(
                self.table_name,
                Key=self._key(record.tenant_id, record.message_id),
                ConditionExpression="#v = :expected",
                ExpressionAttributeNames={"#v": "version"},
                ExpressionAttributeValues={":expected": _n(record.version)},
            )
            if result.is_success:
                deleted += 1
            elif not result.is_conflict:
                self._raise_for(result, "delete_item")

        if deleted:
            logger.info(
                "processing_records_purged",
                tenant_id=tenant_id,
                count=deleted,
                cutoff=cutoff.isoformat(),
            )
        return deleted

    # Leases

    def acquire_lease(self, name: str, owner: str, ttl_seconds: int) -> bool:
        now = int(self.now().timestamp())
        result = self.client.put_item(
            self.table_name,
            Item={
                PARTITION_KEY: _s(LEASE_PARTITION),
                SORT_KEY: _s(f"{LEASE_PREFIX}{name}"),
                "lease_owner": _s(owner),
                "expires_at": _n(now + ttl_seconds),
            },
            ConditionExpression=(
                "attribute_not_exists(#sk) OR lease_owner = :owner "
                "OR expires_at < :now"
            ),
            ExpressionAttributeNames={"#sk": SORT_KEY},
            ExpressionAttributeValues={":owner": _s(owner), ":now": _n(now)},
        )
        if result.is_success:
            return True
        if result.is_conflict:
            return False
        self._raise_for(result, "put_item")
        return False

    def release_lease(self, name: str, owner: str) -> bool:
        result = self.client.delete_item(
            self.table_name,
            Key={
                PARTITION_KEY: _s(LEASE_PARTITION),
                SORT_KEY: _s(f"{LEASE_PREFIX}{name}"),
            },
            ConditionExpression="lease_owner = :owner",
            ExpressionAttributeValues={":owner": _s(owner)},
        )
        if result.is_success:
            return True
        if result.is_conflict:
            return False
        self._raise_for(result, "delete_item")
        return False
