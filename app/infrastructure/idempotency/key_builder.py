"""Message key builder for deterministic message ids."""

import hashlib
from typing import Any


class MessageKeyBuilder:
    """Build deterministic message ids for work that has no natural key.

    The same components always produce the same id, so a producer that
    resends a record without an explicit message id still deduplicates.
    Component order does not matter and ``None`` values are dropped.

    Example:
        >>> builder = MessageKeyBuilder(namespace="cdm")
        >>> builder.build("crm", entity_type="customer", external_id="C-42")
        'cdm:crm:3f1c9a0b7e2d4c55'
    """

    def __init__(self, namespace: str):
        """Initialize key builder.

        Args:
            namespace: Namespace for key isolation (e.g., "cdm")
        """
        if not namespace:
            raise ValueError("namespace is required")
        self.namespace = namespace

    def build(self, scope: str, **components: Any) -> str:
        """Build a message id from components.

        Args:
            scope: Coarse grouping inside the namespace (e.g., the source system)
            **components: Key components (entity_type, external_id, etc.)

        Returns:
            Message id string ``namespace:scope:<16 hex chars>``
        """
        sorted_components = sorted(
            (k, v) for k, v in components.items() if v is not None
        )

        key_parts = [self.namespace, scope]
        key_parts.extend(f"{k}={v}" for k, v in sorted_components)
        key_string = "|".join(str(part) for part in key_parts)

        key_hash = hashlib.sha256(key_string.encode()).hexdigest()[:16]

        return f"{self.namespace}:{scope}:{key_hash}"
