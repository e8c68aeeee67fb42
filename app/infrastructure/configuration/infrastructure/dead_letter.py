"""Dead-letter queue infrastructure settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class DeadLetterSettings(InfrastructureSettings):
    """Dead-letter queue configuration.

    Environment Variables:
        ENABLE_DEAD_LETTER_QUEUE: Route hopeless work to the DLQ (default: True).
            When disabled, exhausted records stay FAILED with a closed budget.
        DEAD_LETTER_RETENTION_DAYS: Days to keep dead-lettered records (default: 90)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        if settings.dead_letter.enabled:
            retention = settings.dead_letter.retention_days
        ```
    """

    enabled: bool = Field(
        default=True,
        alias="ENABLE_DEAD_LETTER_QUEUE",
        description="Enable the dead-letter queue",
    )
    retention_days: int = Field(
        default=90,
        alias="DEAD_LETTER_RETENTION_DAYS",
        description="Days to retain dead-lettered records",
    )
