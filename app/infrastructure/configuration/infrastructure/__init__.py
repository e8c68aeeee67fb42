"""Infrastructure settings __init__ - exports all infrastructure settings."""

from infrastructure.configuration.infrastructure.dead_letter import DeadLetterSettings
from infrastructure.configuration.infrastructure.processing import ProcessingSettings

__all__ = [
    "DeadLetterSettings",
    "ProcessingSettings",
]
