"""Schema and quality validation for ingestion payloads."""

import json
from typing import Any, Dict, Mapping, Optional, Set, Tuple, Union

from infrastructure.idempotency import canonical_json, content_hash
from infrastructure.logging import get_module_logger
from modules.ingestion.coercion import (
    FieldTypeError,
    canonical_value,
    coerce_type,
    format_problems,
    is_present,
)
from modules.ingestion.errors import TransformationError, UnknownSchemaError
from modules.ingestion.models import ValidationResult
from modules.ingestion.schemas import EntitySchema, SchemaRegistry, default_registry
from modules.ingestion.scoring import QualityWeights, score_fields
from modules.ingestion.transformer import rename_fields, to_envelope

logger = get_module_logger()

RawPayload = Union[str, bytes, Mapping[str, Any]]


class _MalformedPayload(ValueError):
    pass


def _parse(raw_payload: RawPayload) -> Dict[str, Any]:
    if isinstance(raw_payload, Mapping):
        return dict(raw_payload)
    if isinstance(raw_payload, bytes):
        try:
            raw_payload = raw_payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise _MalformedPayload(f"payload is not UTF-8: {e}") from e
    if not isinstance(raw_payload, str):
        raise _MalformedPayload(
            f"unsupported payload type {type(raw_payload).__name__}"
        )
    try:
        parsed = json.loads(raw_payload)
    except json.JSONDecodeError as e:
        raise _MalformedPayload(f"malformed JSON: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise _MalformedPayload("payload must be a JSON object")
    return parsed


class IngestionValidator:
    """Validate, fingerprint and canonicalize entity payloads.

    Args:
        registry: Entity schemas to validate against
        weights: Sub-score weighting for the overall quality score
        default_schema_version: Version used when a call does not name one
    """

    def __init__(
        self,
        registry: Optional[SchemaRegistry] = None,
        weights: Optional[QualityWeights] = None,
        default_schema_version: str = "1.0",
    ):
        self.registry = registry or default_registry()
        self.weights = weights or QualityWeights()
        self.default_schema_version = default_schema_version

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "IngestionValidator":
        kwargs.setdefault(
            "default_schema_version", settings.ingestion.default_schema_version
        )
        return cls(**kwargs)

    def validate(
        self,
        entity_type: str,
        raw_payload: RawPayload,
        schema_version: Optional[str] = None,
        *,
        source_system: Optional[str] = None,
    ) -> ValidationResult:
        """Check a payload against its entity schema and score its quality.

        Never raises for bad input: malformed payloads and unknown schemas
        come back as ``is_valid=False`` with a score of 0.
        """
        version = schema_version or self.default_schema_version
        try:
            payload = _parse(raw_payload)
            schema = self.registry.get(entity_type, version)
        except (_MalformedPayload, UnknownSchemaError) as e:
            logger.info(
                "payload_rejected",
                entity_type=entity_type,
                schema_version=version,
                error=str(e),
            )
            return ValidationResult.rejected(str(e), entity_type, version)

        return self._check(schema, rename_fields(payload, schema, source_system))

    def _check(self, schema: EntitySchema, data: Mapping[str, Any]) -> ValidationResult:
        errors = []
        warnings = []
        expected: Set[str] = set()
        present: Set[str] = set()
        accurate: Set[str] = set()
        inconsistent: Set[str] = set()
        values: Dict[str, Any] = {}

        for spec in schema.fields:
            value = data.get(spec.name)
            if not is_present(value):
                if spec.required:
                    expected.add(spec.name)
                    errors.append(f"missing required field '{spec.name}'")
                continue
            expected.add(spec.name)
            present.add(spec.name)
            try:
                typed = coerce_type(spec, value)
            except FieldTypeError as e:
                errors.append(str(e))
                continue
            problems = format_problems(spec, typed)
            if problems:
                warnings.extend(problems)
                continue
            accurate.add(spec.name)
            values[spec.name] = canonical_value(spec, typed)

        for rule in schema.rules:
            if not all(name in values for name in rule.fields):
                continue
            try:
                consistent = rule.check(values)
            except (TypeError, ValueError, ArithmeticError):
                consistent = False
            if not consistent:
                warnings.append(f"{rule.name}: {rule.message}")
                inconsistent.update(rule.fields)

        scores = score_fields(expected, present, accurate, inconsistent, self.weights)
        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            quality_score=scores.overall,
            schema_version=schema.version,
            entity_type=schema.entity_type,
            completeness=scores.completeness,
            accuracy=scores.accuracy,
            consistency=scores.consistency,
        )

    def hash(self, raw_payload: RawPayload) -> str:
        """Content fingerprint of a payload.

        JSON text is hashed in canonical form so whitespace and key order
        do not matter. Text that does not parse is hashed as-is, and bytes
        that are not UTF-8 are hashed raw.
        """
        if isinstance(raw_payload, Mapping):
            return content_hash(canonical_json(dict(raw_payload)))
        text = raw_payload
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError:
                return content_hash(raw_payload)
        try:
            return content_hash(canonical_json(json.loads(text)))
        except json.JSONDecodeError:
            return content_hash(text)

    def transform(
        self,
        entity_type: str,
        raw_payload: RawPayload,
        source_system: str,
        schema_version: Optional[str] = None,
        *,
        validation: Optional[ValidationResult] = None,
    ) -> Dict[str, Any]:
        """Canonicalize a valid payload into a CDM envelope.

        Args:
            validation: Result of an earlier ``validate`` call for this
                payload, to avoid validating twice

        Raises:
            TransformationError: The payload is not valid
        """
        version = schema_version or self.default_schema_version
        if validation is None:
            validation = self.validate(
                entity_type, raw_payload, version, source_system=source_system
            )
        if not validation.is_valid:
            raise TransformationError(
                f"cannot transform invalid {entity_type} payload",
                diagnostics={"validation": validation.model_dump(mode="json")},
            )
        schema, payload = self._resolve(entity_type, raw_payload, version)
        envelope = to_envelope(schema, payload, source_system)
        logger.debug(
            "payload_transformed",
            entity_type=entity_type,
            schema_version=version,
            source_system=source_system,
        )
        return envelope

    def _resolve(
        self, entity_type: str, raw_payload: RawPayload, version: str
    ) -> Tuple[EntitySchema, Dict[str, Any]]:
        try:
            return self.registry.get(entity_type, version), _parse(raw_payload)
        except (_MalformedPayload, UnknownSchemaError) as e:
            raise TransformationError(str(e)) from e
