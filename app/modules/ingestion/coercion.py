"""Type coercion and format checks for declared fields."""

import re
from datetime import datetime, timezone
from typing import Any, List

from modules.ingestion.schemas import FieldSpec, FieldType

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")

_TRUE = frozenset({"true", "1", "yes"})
_FALSE = frozenset({"false", "0", "no"})


class FieldTypeError(TypeError):
    """A value cannot be read as its declared type."""


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def parse_datetime(value: Any) -> datetime:
    """Parse ISO-8601 text (``Z`` suffix allowed) into an aware UTC datetime.

    Naive values are taken to be UTC.

    Raises:
        ValueError: The text is not ISO-8601
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def coerce_type(spec: FieldSpec, value: Any) -> Any:
    """Read ``value`` as the field's declared type.

    Numeric strings count as numbers and "true"/"false" strings as
    booleans. Datetimes and emails only need to be strings here; whether
    the text is well formed is a format question.

    Raises:
        FieldTypeError: The value has the wrong type
    """
    kind = spec.type
    if kind in (FieldType.STRING, FieldType.EMAIL):
        if isinstance(value, str):
            return value
        if kind == FieldType.STRING and isinstance(value, (int, float)) and not (
            isinstance(value, bool)
        ):
            return str(value)
    elif kind == FieldType.DATETIME:
        if isinstance(value, (str, datetime)):
            return value
    elif kind == FieldType.INTEGER:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                pass
    elif kind == FieldType.NUMBER:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                pass
    elif kind == FieldType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
            return value.strip().lower() in _TRUE
    elif kind == FieldType.OBJECT:
        if isinstance(value, dict):
            return value
    elif kind == FieldType.ARRAY:
        if isinstance(value, list):
            return value

    raise FieldTypeError(
        f"field '{spec.name}' expected {kind.value}, got {type(value).__name__}"
    )


def canonical_value(spec: FieldSpec, typed: Any) -> Any:
    """Canonical form of an already type-checked value.

    Raises:
        ValueError: A datetime does not parse
    """
    if spec.type == FieldType.DATETIME:
        return parse_datetime(typed)
    if spec.type == FieldType.EMAIL:
        return typed.strip().lower()
    if isinstance(typed, str):
        return typed.strip()
    return typed


def format_problems(spec: FieldSpec, typed: Any) -> List[str]:
    """Format and range violations of a type-checked value."""
    problems: List[str] = []
    name = spec.name

    if spec.type == FieldType.DATETIME:
        try:
            parse_datetime(typed)
        except ValueError:
            problems.append(f"field '{name}' is not an ISO-8601 datetime")
    if spec.type == FieldType.EMAIL and not EMAIL_PATTERN.match(typed.strip()):
        problems.append(f"field '{name}' is not a valid email address")
    if spec.pattern and isinstance(typed, str) and not re.match(spec.pattern, typed.strip()):
        problems.append(f"field '{name}' does not match pattern {spec.pattern}")
    if spec.max_length is not None and isinstance(typed, str):
        if len(typed.strip()) > spec.max_length:
            problems.append(f"field '{name}' exceeds {spec.max_length} characters")
    if isinstance(typed, (int, float)) and not isinstance(typed, bool):
        if spec.min_value is not None and typed < spec.min_value:
            problems.append(f"field '{name}' is below minimum {spec.min_value}")
        if spec.max_value is not None and typed > spec.max_value:
            problems.append(f"field '{name}' is above maximum {spec.max_value}")
    if spec.allowed_values is not None:
        candidate = typed.strip() if isinstance(typed, str) else typed
        if candidate not in spec.allowed_values:
            problems.append(f"field '{name}' has unexpected value {candidate!r}")
    return problems
