"""Feature settings __init__ - exports all feature settings."""

from infrastructure.configuration.features.ingestion import IngestionFeatureSettings

__all__ = [
    "IngestionFeatureSettings",
]
