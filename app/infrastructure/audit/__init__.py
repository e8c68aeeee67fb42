"""Audit infrastructure for operator actions on processing records.

This package provides:
- AuditEvent: Pydantic model for structured audit events
- create_audit_event: Factory flattening metadata into audit fields
- emit_audit_event: Write an audit event to the structured log stream
"""

from infrastructure.audit.models import AuditEvent, create_audit_event
from infrastructure.audit.sink import emit_audit_event

__all__ = ["AuditEvent", "create_audit_event", "emit_audit_event"]
