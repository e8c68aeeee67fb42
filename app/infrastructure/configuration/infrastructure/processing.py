"""Processing ledger infrastructure settings."""

from typing import Optional

from pydantic import Field, field_validator

from infrastructure.configuration.base import InfrastructureSettings


class ProcessingSettings(InfrastructureSettings):
    """Configuration for idempotent processing of keyed units of work.

    Controls the retry budget and backoff used by the coordinator, the
    liveness window after which a PROCESSING record is reclaimed, the
    storage backend and the background sweep.

    Environment Variables:
        MAX_RETRY_ATTEMPTS: Attempts before dead-lettering (default: 3)
        BASE_RETRY_DELAY_SECONDS: First backoff delay (default: 30s)
        MAX_RETRY_DELAY_SECONDS: Backoff cap (default: 3600s = 1h)
        RETRY_JITTER_RATIO: Jitter as a fraction of the delay (default: 0.2)
        LIVENESS_WINDOW_SECONDS: Trust window for PROCESSING records (default: 300s)
        WORK_TIMEOUT_SECONDS: Per-invocation timeout, unset means none
        RETENTION_DAYS: Age after which completed records are purged (default: 30)
        PROCESSING_BACKEND: 'memory' or 'dynamodb' (default: memory)
        PROCESSING_DYNAMODB_TABLE_NAME: DynamoDB table for processing records
        SWEEP_BATCH_SIZE: Records resubmitted per sweep (default: 100)
        SWEEP_LEASE_SECONDS: Lease held by a running sweep (default: 300s)

    Exponential Backoff:
        Delay calculation: min(base_delay * 2 ^ (attempt - 1), max_delay) +/- jitter

        Example with defaults (base=30s, max=3600s, jitter 20%):
            Attempt 1: 30s (24-36s)
            Attempt 2: 60s (48-72s)
            Attempt 3: 120s (96-144s)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        max_attempts = settings.processing.max_retry_attempts
        ```
    """

    max_retry_attempts: int = Field(
        default=3,
        alias="MAX_RETRY_ATTEMPTS",
        description="Maximum processing attempts before dead-lettering",
    )
    base_retry_delay_seconds: int = Field(
        default=30,
        alias="BASE_RETRY_DELAY_SECONDS",
        description="Base delay for exponential backoff (seconds)",
    )
    max_retry_delay_seconds: int = Field(
        default=3600,
        alias="MAX_RETRY_DELAY_SECONDS",
        description="Maximum delay for exponential backoff (seconds, 1 hour)",
    )
    retry_jitter_ratio: float = Field(
        default=0.2,
        alias="RETRY_JITTER_RATIO",
        description="Jitter applied to each delay as a fraction of the delay",
    )
    liveness_window_seconds: int = Field(
        default=300,
        alias="LIVENESS_WINDOW_SECONDS",
        description="How long a PROCESSING record is trusted before reclaim",
    )
    work_timeout_seconds: Optional[float] = Field(
        default=None,
        alias="WORK_TIMEOUT_SECONDS",
        description="Timeout applied to each unit of work (None disables it)",
    )
    retention_days: int = Field(
        default=30,
        alias="RETENTION_DAYS",
        description="Days to keep completed and cancelled records",
    )
    backend: str = Field(
        default="memory",
        alias="PROCESSING_BACKEND",
        description="Record store backend: 'memory' or 'dynamodb'",
    )
    dynamodb_table_name: str = Field(
        default="processing_records",
        alias="PROCESSING_DYNAMODB_TABLE_NAME",
        description="DynamoDB table name (if using the DynamoDB backend)",
    )
    sweep_batch_size: int = Field(
        default=100,
        alias="SWEEP_BATCH_SIZE",
        description="Maximum records resubmitted by one sweep",
    )
    sweep_lease_seconds: int = Field(
        default=300,
        alias="SWEEP_LEASE_SECONDS",
        description="Duration of the per-tenant sweep lease (seconds)",
    )

    @field_validator(
        "max_retry_attempts",
        "base_retry_delay_seconds",
        "max_retry_delay_seconds",
        "liveness_window_seconds",
        "retention_days",
        "sweep_batch_size",
        "sweep_lease_seconds",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Reject zero and negative values."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("retry_jitter_ratio")
    @classmethod
    def validate_jitter_ratio(cls, v: float) -> float:
        """Jitter must stay within [0, 1)."""
        if not 0 <= v < 1:
            raise ValueError("retry_jitter_ratio must be in [0, 1)")
        return v
