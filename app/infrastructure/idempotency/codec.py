"""Type-preserving JSON encoding for stored payloads and results.

Replays must hand back exactly what the work function returned, and the
retry sweep must resubmit exactly what the caller submitted. Plain JSON
would turn tuples into lists and reject bytes, so values without a JSON
equivalent are stored as tagged objects:

    {"__stored_type__": "bytes", "value": "AXJhdw=="}

Values with no encoding raise TypeError rather than being stringified.
"""

import base64
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict

TYPE_TAG = "__stored_type__"


def _tagged(type_name: str, value: Any) -> Dict[str, Any]:
    return {TYPE_TAG: type_name, "value": value}


def encode_value(value: Any) -> Any:
    """Convert ``value`` into JSON-safe data that ``decode_value`` reverses.

    Raises:
        TypeError: ``value`` holds an object with no stored form
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, list):
        return [encode_value(item) for item in value]
    if isinstance(value, dict):
        if TYPE_TAG not in value and all(isinstance(k, str) for k in value):
            return {key: encode_value(item) for key, item in value.items()}
        # Non-string keys, or a key that would read back as a tag
        return _tagged(
            "dict", [[encode_value(k), encode_value(v)] for k, v in value.items()]
        )
    if isinstance(value, tuple):
        return _tagged("tuple", [encode_value(item) for item in value])
    if isinstance(value, (set, frozenset)):
        return _tagged(
            type(value).__name__, [encode_value(item) for item in value]
        )
    if isinstance(value, (bytes, bytearray)):
        return _tagged(
            type(value).__name__, base64.b64encode(value).decode("ascii")
        )
    # datetime is a date subclass and must be checked first
    if isinstance(value, datetime):
        return _tagged("datetime", value.isoformat())
    if isinstance(value, date):
        return _tagged("date", value.isoformat())
    if isinstance(value, Decimal):
        return _tagged("decimal", str(value))
    if isinstance(value, uuid.UUID):
        return _tagged("uuid", str(value))
    raise TypeError(f"values of type {type(value).__name__} cannot be stored")


_DECODERS: Dict[str, Callable[[Any], Any]] = {
    "dict": lambda pairs: {decode_value(k): decode_value(v) for k, v in pairs},
    "tuple": lambda items: tuple(decode_value(i) for i in items),
    "set": lambda items: {decode_value(i) for i in items},
    "frozenset": lambda items: frozenset(decode_value(i) for i in items),
    "bytes": base64.b64decode,
    "bytearray": lambda text: bytearray(base64.b64decode(text)),
    "datetime": datetime.fromisoformat,
    "date": date.fromisoformat,
    "decimal": Decimal,
    "uuid": uuid.UUID,
}


def decode_value(data: Any) -> Any:
    """Inverse of ``encode_value``.

    Raises:
        ValueError: ``data`` carries an unknown type tag
    """
    if isinstance(data, list):
        return [decode_value(item) for item in data]
    if not isinstance(data, dict):
        return data
    type_name = data.get(TYPE_TAG)
    if type_name is None:
        return {key: decode_value(item) for key, item in data.items()}
    decoder = _DECODERS.get(type_name)
    if decoder is None:
        raise ValueError(f"unknown stored type {type_name!r}")
    return decoder(data["value"])
