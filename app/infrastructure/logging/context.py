"""Processing context binding for structured logging.

Binds the identity of the unit of work being processed (tenant, message,
correlation id) to structlog's context variables so every log entry
emitted while the work runs carries it.

Usage:
    from infrastructure.logging import bind_processing_context

    with bind_processing_context(tenant_id="t1", message_id="m1"):
        logger.info("processing_started")
"""

import uuid
from contextlib import contextmanager
from typing import Optional, Any, Generator
import structlog


@contextmanager
def bind_processing_context(
    tenant_id: Optional[str] = None,
    message_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    message_type: Optional[str] = None,
    **extra_context: Any,
) -> Generator[str, None, None]:
    """Bind processing-scoped context to all logs within the block.

    Context that was already bound by an outer block is restored on exit,
    so nested bindings (a sweep resubmitting a message) do not clobber it.

    Args:
        tenant_id: Tenant that owns the unit of work.
        message_id: Caller-supplied idempotency key.
        correlation_id: Trace identifier. Reuses the current one, or
            generates a new one when none is bound.
        message_type: Logical kind of work.
        **extra_context: Additional key-value pairs to include in logs.

    Yields:
        The correlation id in effect for the block.
    """
    context: dict[str, Any] = {}

    context["correlation_id"] = (
        correlation_id or get_correlation_id() or str(uuid.uuid4())
    )
    if tenant_id is not None:
        context["tenant_id"] = tenant_id
    if message_id is not None:
        context["message_id"] = message_id
    if message_type is not None:
        context["message_type"] = message_type
    context.update(extra_context)

    previous = structlog.contextvars.get_contextvars()
    structlog.contextvars.bind_contextvars(**context)
    try:
        yield context["correlation_id"]
    finally:
        structlog.contextvars.unbind_contextvars(*context.keys())
        restored = {k: v for k, v in previous.items() if k in context}
        if restored:
            structlog.contextvars.bind_contextvars(**restored)


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from the logging context."""
    ctx = structlog.contextvars.get_contextvars()
    return ctx.get("correlation_id")


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID in the current logging context.

    Args:
        correlation_id: The correlation ID to set.
    """
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_processing_context() -> None:
    """Clear all processing-scoped context from the logging context.

    Worker threads should call this between units of work to prevent
    context leaking from one message to the next.
    """
    structlog.contextvars.clear_contextvars()
