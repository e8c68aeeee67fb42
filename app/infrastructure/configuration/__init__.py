"""Infrastructure configuration module - public API.

Centralized configuration for the processing engine using Pydantic
BaseSettings with domain-based organization.

Exports:
    Settings: Main settings class (for testing/overrides)
    ProcessingSettings: Processing ledger settings class (for testing)
    DeadLetterSettings: Dead-letter queue settings class (for testing)

Example:
    ```python
    from infrastructure.services import get_settings

    settings = get_settings()

    backend = settings.processing.backend
    dlq_enabled = settings.dead_letter.enabled
    ```
"""

from infrastructure.configuration.settings import Settings
from infrastructure.configuration.infrastructure import (
    DeadLetterSettings,
    ProcessingSettings,
)

__all__ = ["Settings", "ProcessingSettings", "DeadLetterSettings"]
