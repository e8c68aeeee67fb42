"""Audit event emission."""

from infrastructure.audit.models import AuditEvent
from infrastructure.logging import get_module_logger

logger = get_module_logger()


def emit_audit_event(event: AuditEvent) -> AuditEvent:
    """Write an audit event as one structured log entry and return it."""
    logger.info("audit_event", **event.to_log_payload())
    return event
