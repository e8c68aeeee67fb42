"""Structured logging for the processing engine.

Workers call ``configure_logging()`` once at startup. Components log
through ``get_module_logger()`` and wrap each unit of work in
``bind_processing_context()`` so tenant, message and correlation ids
reach every event emitted while the work runs.
"""

from infrastructure.logging.context import (
    bind_processing_context,
    clear_processing_context,
    get_correlation_id,
    set_correlation_id,
)
from infrastructure.logging.formatters import SENSITIVE_PATTERNS
from infrastructure.logging.setup import (
    build_processors,
    configure_logging,
    get_module_logger,
)

__all__ = [
    "SENSITIVE_PATTERNS",
    "bind_processing_context",
    "build_processors",
    "clear_processing_context",
    "configure_logging",
    "get_correlation_id",
    "get_module_logger",
    "set_correlation_id",
]
