"""Content fingerprints for submitted payloads."""

import hashlib
import json
from typing import Any


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys and no insignificant whitespace."""
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )


def content_hash(payload: Any) -> str:
    """SHA-256 hex digest of a payload.

    Strings and bytes are hashed as UTF-8 text. Anything else is hashed
    over its canonical JSON form, so dict key order does not matter.
    """
    if isinstance(payload, bytes):
        data = payload
    elif isinstance(payload, str):
        data = payload.encode("utf-8")
    else:
        data = canonical_json(payload).encode("utf-8")
    return hashlib.sha256(data).hexdigest()
