"""Default failure classification for units of work."""

import asyncio
from concurrent.futures import CancelledError

from botocore.exceptions import BotoCoreError, ClientError

from infrastructure.idempotency.errors import (
    PermanentFailure,
    TransientFailure,
    WorkCancelled,
)
from infrastructure.idempotency.options import FailureKind
from infrastructure.operations.classifiers import classify_aws_error

# Raised by bugs or bad input, never fixed by retrying
PROGRAMMING_ERRORS = (ValueError, TypeError, KeyError, AttributeError)


def default_failure_classifier(exc: BaseException) -> FailureKind:
    """Classify an exception raised by a unit of work.

    Mapping:
    - WorkCancelled, concurrent.futures and asyncio CancelledError: CANCELLED
    - PermanentFailure (including ValidationFailure): PERMANENT
    - TransientFailure: TRANSIENT
    - botocore errors: TRANSIENT when the AWS classifier says retryable
      (or a lost condition), PERMANENT otherwise
    - ValueError, TypeError, KeyError, AttributeError: PERMANENT
    - anything else: TRANSIENT
    """
    if isinstance(exc, (WorkCancelled, CancelledError, asyncio.CancelledError)):
        return FailureKind.CANCELLED
    if isinstance(exc, PermanentFailure):
        return FailureKind.PERMANENT
    if isinstance(exc, TransientFailure):
        return FailureKind.TRANSIENT
    if isinstance(exc, (ClientError, BotoCoreError)):
        result = classify_aws_error(exc)
        if result.is_retryable or result.is_conflict:
            return FailureKind.TRANSIENT
        return FailureKind.PERMANENT
    if isinstance(exc, PROGRAMMING_ERRORS):
        return FailureKind.PERMANENT
    return FailureKind.TRANSIENT
