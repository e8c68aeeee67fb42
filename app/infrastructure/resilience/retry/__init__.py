"""Retry scheduling and background resubmission.

Architecture:
- RetryScheduler: exponential backoff with jitter for failed attempts
- HandlerRegistry: work functions per message type, used to resume work
- RetrySweeper: single-flight per-tenant sweep resubmitting due and
  stale records through the coordinator

Usage:
    from infrastructure.resilience.retry import HandlerRegistry, RetrySweeper

    registry = HandlerRegistry()
    registry.register("orders.created", handle_order)

    sweeper = RetrySweeper(coordinator, registry)
    stats = sweeper.run_once("tenant-a")
"""

from infrastructure.resilience.retry.scheduler import RandomSource, RetryScheduler
from infrastructure.resilience.retry.sweeper import (
    HandlerRegistry,
    RegisteredHandler,
    RetrySweeper,
)

__all__ = [
    "HandlerRegistry",
    "RandomSource",
    "RegisteredHandler",
    "RetryScheduler",
    "RetrySweeper",
]
