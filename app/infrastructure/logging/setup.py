"""Structlog configuration for processing workers.

Call ``configure_logging()`` once when a worker process starts. Modules
obtain their logger with ``get_module_logger()``, which binds the module
path so every record, retry and dead-letter event can be traced back to
the component that emitted it.
"""

import inspect
import logging
import sys
from typing import Any, List, Optional

import structlog
from structlog.stdlib import BoundLogger

from infrastructure.logging.formatters import (
    add_app_info,
    add_environment_info,
    mask_sensitive_data,
    truncate_large_values,
)

APP_NAME = "processing-ledger"

SILENT_LEVEL = logging.CRITICAL + 1


def _is_test_environment() -> bool:
    return "pytest" in sys.modules


def build_processors(
    git_sha: str, environment: str, production: bool
) -> List[Any]:
    """Processor chain shared by every worker.

    Masking runs before truncation so a long secret is never partially
    rendered. The renderer is always last.
    """
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if production
        else structlog.dev.ConsoleRenderer()
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
        add_app_info(APP_NAME, git_sha),
        add_environment_info(environment),
        mask_sensitive_data(),
        truncate_large_values(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def _configure_silent() -> BoundLogger:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=SILENT_LEVEL, force=True)
    logging.root.setLevel(SILENT_LEVEL)
    return structlog.stdlib.get_logger()


def configure_logging(
    log_level: Optional[str] = None,
    is_production: Optional[bool] = None,
) -> BoundLogger:
    """Configure structlog for the current process.

    Args:
        log_level: Overrides ``settings.LOG_LEVEL``.
        is_production: Overrides ``settings.is_production``. Production
            renders JSON lines, anything else renders for the console.

    Returns:
        A logger using the new configuration.
    """
    if _is_test_environment():
        return _configure_silent()

    # Imported here: the providers module builds stores that log on import
    from infrastructure.services.providers import get_settings

    settings = get_settings()
    production = (
        settings.is_production if is_production is None else is_production
    )

    structlog.configure(
        processors=build_processors(
            settings.GIT_SHA, settings.PREFIX or "production", production
        ),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level_name = (log_level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name, logging.INFO),
    )
    return structlog.stdlib.get_logger()


def get_module_logger(**context: Any) -> BoundLogger:
    """Logger bound to the calling module.

    Binds ``component`` (last dotted segment) and ``module_path``, plus any
    extra keyword context such as a fixed ``worker_id``.

    Example:
        # In infrastructure/resilience/retry/sweeper.py
        logger = get_module_logger()
        logger.info("retry_sweep_completed", tenant_id="t1", processed=4)
    """
    logger = structlog.stdlib.get_logger()
    frame = inspect.currentframe()
    caller = frame.f_back if frame is not None else None
    module = inspect.getmodule(caller) if caller is not None else None
    if module is None:
        return logger.bind(component="unknown", **context)

    module_name = module.__name__
    return logger.bind(
        component=module_name.rsplit(".", 1)[-1],
        module_path=module_name,
        **context,
    )
