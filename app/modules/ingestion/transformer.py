"""Canonicalization of validated payloads into CDM envelopes."""

from typing import Any, Dict, Mapping, Optional

from modules.ingestion.coercion import (
    FieldTypeError,
    canonical_value,
    coerce_type,
    is_present,
)
from modules.ingestion.errors import TransformationError
from modules.ingestion.schemas import EntitySchema, FieldType


def rename_fields(
    payload: Mapping[str, Any], schema: EntitySchema, source_system: Optional[str]
) -> Dict[str, Any]:
    """Map incoming field names onto the schema's canonical names.

    A field sent under its canonical name wins over the same field sent
    under an alias. Unknown fields are kept under their own name.
    """
    aliases = schema.alias_map(source_system)
    renamed: Dict[str, Any] = {}
    for name, value in payload.items():
        canonical = aliases.get(name, name)
        if canonical in renamed and canonical != name:
            continue
        renamed[canonical] = value
    return renamed


def _strip(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        return {k: _strip(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_strip(v) for v in value]
    return value


def to_envelope(
    schema: EntitySchema,
    payload: Mapping[str, Any],
    source_system: str,
) -> Dict[str, Any]:
    """Build ``{entity_type, schema_version, source_system, data}``.

    Raises:
        TransformationError: A declared field cannot be canonicalized
    """
    data = {k: _strip(v) for k, v in rename_fields(payload, schema, source_system).items()}

    for spec in schema.fields:
        value = data.get(spec.name)
        if not is_present(value):
            data.pop(spec.name, None)
            continue
        try:
            typed = coerce_type(spec, value)
        except FieldTypeError as e:
            raise TransformationError(
                f"cannot canonicalize field '{spec.name}': {e}",
                diagnostics={"field": spec.name, "entity_type": schema.entity_type},
            ) from e
        try:
            canonical = canonical_value(spec, typed)
        except ValueError:
            # Unparseable datetimes were reported as warnings; keep the text
            data[spec.name] = typed.strip() if isinstance(typed, str) else typed
            continue
        if spec.type == FieldType.DATETIME:
            canonical = canonical.isoformat()
        data[spec.name] = canonical

    return {
        "entity_type": schema.entity_type,
        "schema_version": schema.version,
        "source_system": source_system,
        "data": data,
    }
