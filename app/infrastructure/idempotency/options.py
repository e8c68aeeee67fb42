"""Per-call execution options for the idempotency coordinator."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from infrastructure.idempotency.models import MessagePriority

if TYPE_CHECKING:
    from infrastructure.configuration import Settings


class FailureKind(str, Enum):
    """How a failed attempt is routed.

    Values:
        TRANSIENT: Retry with backoff until the budget runs out
        PERMANENT: Dead-letter immediately
        CANCELLED: Reschedule; consumes budget only when configured to
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    CANCELLED = "cancelled"


class PayloadMismatchPolicy(str, Enum):
    """What to do when a known message id arrives with a different payload.

    Values:
        REJECT: Refuse the call and leave the stored record untouched
        ACCEPT: Replace the stored hash and payload, then proceed
    """

    REJECT = "reject"
    ACCEPT = "accept"


FailureClassifier = Callable[[BaseException], FailureKind]


@dataclass(frozen=True)
class ExecutionOptions:
    """Options for one ``IdempotencyCoordinator.execute`` call.

    Attributes:
        max_attempts: Attempts allowed before dead-lettering
        base_delay_seconds: First retry delay
        max_delay_seconds: Retry delay cap
        jitter_ratio: Jitter as a fraction of the delay
        liveness_window_seconds: How long a PROCESSING record is trusted
        timeout_seconds: Abandon the work after this long (None disables)
        failure_classifier: Maps exceptions to FailureKind. None uses the
            default classifier.
        priority: Retry ordering priority
        metadata: Stored on the record when it is first created
        schema_version: Stored on the record when it is first created
        cancellation_consumes_attempt: Whether a cancelled attempt counts
            against max_attempts
        payload_mismatch_policy: Handling of same id, different payload
        store_payload: Keep the payload on the record so the retry sweep
            can resubmit it

    Example:
        options = ExecutionOptions(max_attempts=5, timeout_seconds=10)
        outcome = coordinator.execute(..., options=options)
    """

    max_attempts: int = 3
    base_delay_seconds: float = 30
    max_delay_seconds: float = 3600
    jitter_ratio: float = 0.2
    liveness_window_seconds: float = 300
    timeout_seconds: Optional[float] = None
    failure_classifier: Optional[FailureClassifier] = None
    priority: MessagePriority = MessagePriority.NORMAL
    metadata: Mapping[str, Any] = field(default_factory=dict)
    schema_version: str = "1.0"
    cancellation_consumes_attempt: bool = False
    payload_mismatch_policy: PayloadMismatchPolicy = PayloadMismatchPolicy.REJECT
    store_payload: bool = True

    def __post_init__(self) -> None:
        """Validate option values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds <= 0:
            raise ValueError("base_delay_seconds must be positive")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if not 0 <= self.jitter_ratio < 1:
            raise ValueError("jitter_ratio must be in [0, 1)")
        if self.liveness_window_seconds <= 0:
            raise ValueError("liveness_window_seconds must be positive")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides: Any) -> "ExecutionOptions":
        """Options populated from the processing settings section."""
        processing = settings.processing
        values: dict[str, Any] = {
            "max_attempts": processing.max_retry_attempts,
            "base_delay_seconds": processing.base_retry_delay_seconds,
            "max_delay_seconds": processing.max_retry_delay_seconds,
            "jitter_ratio": processing.retry_jitter_ratio,
            "liveness_window_seconds": processing.liveness_window_seconds,
            "timeout_seconds": processing.work_timeout_seconds,
            "schema_version": settings.ingestion.default_schema_version,
        }
        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **changes: Any) -> "ExecutionOptions":
        return replace(self, **changes)
