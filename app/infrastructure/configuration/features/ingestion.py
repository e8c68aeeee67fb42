"""CDM ingestion feature settings."""

from pydantic import Field

from infrastructure.configuration.base import FeatureSettings


class IngestionFeatureSettings(FeatureSettings):
    """Settings for Common-Data-Model ingestion consumers.

    Environment Variables:
        QUALITY_THRESHOLD: Score under which valid payloads are flagged (default: 80)
        DEFAULT_SCHEMA_VERSION: Schema version assumed when none is given (default: 1.0)
        INGESTION_MESSAGE_TYPE: Message type recorded for CDM work (default: cdm.ingest)
        INGESTION_SOURCE_TOPIC: Source topic recorded for CDM work (default: cdm-ingestion)
    """

    quality_threshold: int = Field(
        default=80,
        alias="QUALITY_THRESHOLD",
        ge=0,
        le=100,
        description="Quality score under which valid payloads are flagged",
    )
    default_schema_version: str = Field(
        default="1.0",
        alias="DEFAULT_SCHEMA_VERSION",
        description="Schema version used when callers do not pass one",
    )
    message_type: str = Field(
        default="cdm.ingest",
        alias="INGESTION_MESSAGE_TYPE",
    )
    source_topic: str = Field(
        default="cdm-ingestion",
        alias="INGESTION_SOURCE_TOPIC",
    )
