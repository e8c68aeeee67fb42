"""Exception hierarchy for idempotent processing.

Failures raised by units of work tell the coordinator how to route them:
``ValidationFailure`` and ``PermanentFailure`` dead-letter immediately,
``TransientFailure`` follows the backoff path, ``WorkCancelled`` is
rescheduled without consuming the retry budget by default.

Store-level errors (``ConcurrencyConflict`` and friends) are raised by
record stores and handled by the coordinator.
"""

import json
import traceback
from typing import Any, Dict, Optional


class ProcessingError(Exception):
    """Base class for processing errors.

    Attributes:
        diagnostics: Structured details persisted into the record's
            ``exception_details`` when the error ends an attempt.
    """

    def __init__(
        self, message: str = "", diagnostics: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.diagnostics: Dict[str, Any] = dict(diagnostics or {})


class PermanentFailure(ProcessingError):
    """Work failed in a way retrying will not fix."""


class ValidationFailure(PermanentFailure):
    """Payload failed validation. Bypasses the retry budget."""


class TransientFailure(ProcessingError):
    """Work failed in a way that may succeed on a later attempt."""


class WorkCancelled(ProcessingError):
    """Work was cancelled before it finished."""

    def __init__(self, message: str = "Cancelled", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class StoreError(ProcessingError):
    """Record store failed for a reason other than a lost condition."""


class ConcurrencyConflict(StoreError):
    """A conditional update's preconditions did not hold.

    Raised with no side effects. ``current`` carries the record as the
    store saw it when the condition failed, when known.
    """

    def __init__(self, message: str = "", current: Any = None) -> None:
        super().__init__(message)
        self.current = current


class RecordNotFoundError(StoreError):
    """No record exists for the requested key."""


class InvalidTransitionError(StoreError):
    """A write attempted a status change the lifecycle does not allow."""


class RecordInvariantError(StoreError):
    """A write would leave the record's fields inconsistent with its status."""


def format_exception_details(
    exc: BaseException, extra: Optional[Dict[str, Any]] = None
) -> str:
    """Serialize an exception for a record's ``exception_details`` field.

    Returns:
        JSON text with the exception type, message, diagnostics and traceback
    """
    details: Dict[str, Any] = {
        "type": type(exc).__name__,
        "message": str(exc),
        "diagnostics": dict(getattr(exc, "diagnostics", None) or {}),
        "traceback": "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )[-4000:],
    }
    if extra:
        details["diagnostics"].update(extra)
    return json.dumps(details, default=str)
