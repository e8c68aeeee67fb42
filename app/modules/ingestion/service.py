"""CDM ingestion service.

Runs validate -> transform -> sink for each inbound record through the
idempotency coordinator, so a redelivered record is answered from the
cached result instead of being ingested twice.
"""

import json
import uuid
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    Mapping,
    Optional,
    Union,
)

from infrastructure.idempotency import (
    ExecutionOptions,
    ExecutionOutcome,
    MessageKeyBuilder,
    MessagePriority,
    OutcomeKind,
    StoreError,
    ValidationFailure,
)
from infrastructure.logging import bind_processing_context, get_module_logger
from modules.ingestion.models import (
    BatchDataItem,
    BatchIngestionSummary,
    IngestionResult,
)
from modules.ingestion.validator import IngestionValidator

if TYPE_CHECKING:
    from infrastructure.configuration import Settings
    from infrastructure.idempotency.coordinator import IdempotencyCoordinator
    from infrastructure.resilience.retry import HandlerRegistry

logger = get_module_logger()

Sink = Callable[[str, Dict[str, Any]], Any]


def _content(raw_data: Union[str, bytes, Mapping[str, Any]]) -> Any:
    """Parsed JSON object when the text is one, otherwise the text itself.

    The coordinator fingerprints what it is given, so parsing first makes
    whitespace and key order irrelevant to deduplication. Bytes that are
    not UTF-8 are kept as bytes.
    """
    if isinstance(raw_data, Mapping):
        return dict(raw_data)
    text = raw_data
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError:
            return raw_data
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return text
    return parsed if isinstance(parsed, dict) else text


class CDMIngestionService:
    """Idempotent ingestion of source-system records into the CDM.

    Args:
        coordinator: Coordinator the ingestion work runs through
        validator: Payload validator and transformer
        sink: Called with ``(tenant_id, envelope)`` for every ingested record
        key_builder: Builds message ids for records sent without one
        quality_threshold: Valid payloads scoring below this are flagged
        message_type: Message type recorded on processing records
        source_topic: Source topic recorded on processing records
    """

    def __init__(
        self,
        coordinator: "IdempotencyCoordinator",
        validator: Optional[IngestionValidator] = None,
        sink: Optional[Sink] = None,
        key_builder: Optional[MessageKeyBuilder] = None,
        quality_threshold: int = 80,
        message_type: str = "cdm.ingest",
        source_topic: str = "cdm-ingestion",
    ):
        self.coordinator = coordinator
        self.validator = validator or IngestionValidator()
        self.sink = sink
        self.key_builder = key_builder or MessageKeyBuilder("cdm")
        self.quality_threshold = quality_threshold
        self.message_type = message_type
        self.source_topic = source_topic

    @classmethod
    def from_settings(
        cls,
        coordinator: "IdempotencyCoordinator",
        settings: "Settings",
        **kwargs: Any,
    ) -> "CDMIngestionService":
        ingestion = settings.ingestion
        kwargs.setdefault("validator", IngestionValidator.from_settings(settings))
        kwargs.setdefault("quality_threshold", ingestion.quality_threshold)
        kwargs.setdefault("message_type", ingestion.message_type)
        kwargs.setdefault("source_topic", ingestion.source_topic)
        return cls(coordinator, **kwargs)

    def message_id_for(
        self, source_system: str, entity_type: str, external_id: str
    ) -> str:
        return self.key_builder.build(
            source_system, entity_type=entity_type, external_id=external_id
        )

    def register_with(self, registry: "HandlerRegistry") -> None:
        """Let the retry sweep resume ingestion work."""
        registry.register(self.message_type, self.process)

    def process(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Work function: validate, transform and hand the record to the sink.

        Raises:
            ValidationFailure: The payload is invalid. Never retried.
        """
        entity_type = payload["entity_type"]
        source_system = payload["source_system"]
        raw_data = payload["raw_data"]
        schema_version = payload.get("schema_version")

        validation = self.validator.validate(
            entity_type, raw_data, schema_version, source_system=source_system
        )
        if not validation.is_valid:
            raise ValidationFailure(
                f"{entity_type} payload failed validation: "
                + "; ".join(validation.errors),
                diagnostics={"validation": validation.model_dump(mode="json")},
            )

        envelope = self.validator.transform(
            entity_type,
            raw_data,
            source_system,
            validation.schema_version,
            validation=validation,
        )

        low_quality = validation.quality_score < self.quality_threshold
        if low_quality:
            logger.warning(
                "low_quality_payload",
                entity_type=entity_type,
                external_id=payload.get("external_id"),
                quality_score=validation.quality_score,
                quality_threshold=self.quality_threshold,
                warnings=validation.warnings,
            )

        if self.sink is not None:
            self.sink(payload["tenant_id"], envelope)

        return {
            "envelope": envelope,
            "validation": validation.model_dump(mode="json"),
            "low_quality": low_quality,
        }

    def ingest(
        self,
        tenant_id: str,
        source_system: str,
        entity_type: str,
        external_id: str,
        raw_data: Union[str, bytes, Mapping[str, Any]],
        *,
        message_id: Optional[str] = None,
        schema_version: Optional[str] = None,
        correlation_id: Optional[str] = None,
        batch_id: Optional[str] = None,
        priority: MessagePriority = MessagePriority.NORMAL,
    ) -> IngestionResult:
        """Ingest one record, at most once per message id.

        Returns:
            IngestionResult describing the coordinator outcome
        """
        message_id = message_id or self.message_id_for(
            source_system, entity_type, external_id
        )
        version = schema_version or self.validator.default_schema_version
        payload = {
            "tenant_id": tenant_id,
            "source_system": source_system,
            "entity_type": entity_type,
            "external_id": external_id,
            "raw_data": _content(raw_data),
            "schema_version": version,
        }
        metadata = {
            "source_system": source_system,
            "entity_type": entity_type,
            "external_id": external_id,
        }
        if batch_id:
            metadata["batch_id"] = batch_id

        with bind_processing_context(
            tenant_id=tenant_id,
            message_id=message_id,
            correlation_id=correlation_id,
            message_type=self.message_type,
            source_system=source_system,
        ) as bound_correlation_id:
            metadata["correlation_id"] = bound_correlation_id
            options = self._options().with_overrides(
                priority=priority, metadata=metadata, schema_version=version
            )
            outcome = self.coordinator.execute(
                tenant_id,
                message_id,
                self.message_type,
                self.source_topic,
                payload,
                self.process,
                options,
            )
            logger.info(
                "ingestion_outcome",
                entity_type=entity_type,
                external_id=external_id,
                outcome=outcome.kind.value,
                invoked=outcome.invoked,
            )
        return self._to_result(outcome, external_id)

    def ingest_batch(
        self,
        items: Iterable[Union[BatchDataItem, Mapping[str, Any]]],
        tenant_id: str,
        batch_id: Optional[str] = None,
    ) -> BatchIngestionSummary:
        """Ingest a batch item by item.

        Store failures on one item are recorded against it and do not stop
        the rest of the batch.
        """
        batch_id = batch_id or uuid.uuid4().hex
        summary = BatchIngestionSummary(batch_id=batch_id, tenant_id=tenant_id)

        for raw_item in items:
            item = (
                raw_item
                if isinstance(raw_item, BatchDataItem)
                else BatchDataItem.model_validate(raw_item)
            )
            try:
                result = self.ingest(
                    tenant_id,
                    item.source_system,
                    item.entity_type,
                    item.external_id,
                    item.raw_data,
                    message_id=item.message_id,
                    schema_version=item.schema_version,
                    batch_id=batch_id,
                    priority=item.priority,
                )
            except StoreError as e:
                logger.error(
                    "batch_item_failed",
                    batch_id=batch_id,
                    external_id=item.external_id,
                    error=str(e),
                )
                result = IngestionResult(
                    message_id=item.message_id
                    or self.message_id_for(
                        item.source_system, item.entity_type, item.external_id
                    ),
                    external_id=item.external_id,
                    outcome=OutcomeKind.FAILED.value,
                    error_message=str(e),
                )

            summary.total += 1
            if result.outcome == OutcomeKind.COMPLETED.value:
                summary.completed += 1
            elif result.outcome == OutcomeKind.REJECTED.value:
                summary.rejected += 1
            elif result.outcome == OutcomeKind.DEAD_LETTERED.value:
                summary.dead_lettered += 1
            else:
                summary.failed += 1
            if result.low_quality:
                summary.low_quality += 1
            summary.results.append(result)

        logger.info(
            "batch_ingested",
            batch_id=batch_id,
            total=summary.total,
            completed=summary.completed,
            rejected=summary.rejected,
            failed=summary.failed,
            dead_lettered=summary.dead_lettered,
        )
        return summary

    def _options(self) -> ExecutionOptions:
        return self.coordinator.default_options or ExecutionOptions()

    def _to_result(
        self, outcome: ExecutionOutcome, external_id: Optional[str]
    ) -> IngestionResult:
        result = outcome.result if isinstance(outcome.result, dict) else {}
        validation = result.get("validation") or {}
        reason = outcome.reason.value if outcome.reason else outcome.dead_letter_reason
        return IngestionResult(
            message_id=outcome.message_id,
            external_id=external_id,
            outcome=outcome.kind.value,
            reason=reason,
            error_message=outcome.error_message,
            low_quality=bool(result.get("low_quality", False)),
            quality_score=validation.get("quality_score"),
            output=result.get("envelope"),
            invoked=outcome.invoked,
        )
