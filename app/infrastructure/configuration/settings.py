"""Top-level settings for the processing engine.

``Settings`` holds the process-wide values (environment prefix, log level,
deployed git sha) and one section per concern. Sections read their own
environment variables, so a section can also be built on its own in tests.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from infrastructure.configuration.features import IngestionFeatureSettings
from infrastructure.configuration.infrastructure import (
    DeadLetterSettings,
    ProcessingSettings,
)
from infrastructure.configuration.integrations import AwsSettings

SECTIONS = {
    "aws": AwsSettings,
    "ingestion": IngestionFeatureSettings,
    "processing": ProcessingSettings,
    "dead_letter": DeadLetterSettings,
}


class Settings(BaseSettings):
    """All configuration for one worker process.

    Environment Variables:
        PREFIX: Environment prefix; empty in production
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        GIT_SHA: Deployed commit, stamped on every log entry

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        if settings.dead_letter.enabled:
            retention = settings.dead_letter.retention_days
        ```
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    PREFIX: str = ""
    LOG_LEVEL: str = "INFO"
    GIT_SHA: str = "Unknown"

    aws: AwsSettings
    ingestion: IngestionFeatureSettings
    processing: ProcessingSettings
    dead_letter: DeadLetterSettings

    def __init__(self, **kwargs):
        # Sections not passed explicitly are read from the environment
        for name, section_class in SECTIONS.items():
            if name not in kwargs:
                kwargs[name] = section_class()
        super().__init__(**kwargs)

    @property
    def is_production(self) -> bool:
        """Production deployments run without a PREFIX."""
        return not self.PREFIX
