"""Audit events for operator actions on processing records.

Manual retries and permanent failures are recorded as flat events so
each one can be queried directly in the log store: operation specific
details are flattened into ``audit_meta_*`` string fields.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

AuditResult = Literal["success", "failure"]

META_PREFIX = "audit_meta_"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditEvent(BaseModel):
    """One operator action against one processing record.

    Attributes:
        correlation_id: Trace identifier of the action.
        timestamp: ISO 8601 time of the action (UTC).
        action: ``manual_retry`` or ``permanently_failed``.
        tenant_id: Tenant owning the record.
        resource_type: Always ``processing_record`` for ledger actions.
        resource_id: Message id of the record.
        actor: Operator who requested the action.
        result: ``success`` or ``failure``.
        error_type: Exception class name when the action failed.
        error_message: Exception text when the action failed.
    """

    model_config = ConfigDict(extra="allow")

    correlation_id: str
    timestamp: str = Field(default_factory=_utc_timestamp)
    action: str
    tenant_id: str
    resource_type: str
    resource_id: str
    actor: str
    result: AuditResult
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_payload(self) -> Dict[str, Any]:
        """Flat payload for a single structured log entry."""
        return self.model_dump(exclude_none=True)


def _flatten_metadata(metadata: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return {
        f"{META_PREFIX}{key}": None if value is None else str(value)
        for key, value in (metadata or {}).items()
    }


def create_audit_event(
    correlation_id: str,
    action: str,
    tenant_id: str,
    resource_id: str,
    actor: str,
    result: str,
    resource_type: str = "processing_record",
    error_type: Optional[str] = None,
    error_message: Optional[str] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> AuditEvent:
    """Build an AuditEvent, flattening ``metadata`` into ``audit_meta_*`` fields.

    Raises:
        ValueError: If ``result`` is neither ``success`` nor ``failure``.
    """
    if result not in ("success", "failure"):
        raise ValueError(f"result must be 'success' or 'failure', got: {result}")

    return AuditEvent(
        correlation_id=correlation_id,
        action=action,
        tenant_id=tenant_id,
        resource_type=resource_type,
        resource_id=resource_id,
        actor=actor,
        result=result,
        error_type=error_type,
        error_message=error_message,
        **_flatten_metadata(metadata),
    )
