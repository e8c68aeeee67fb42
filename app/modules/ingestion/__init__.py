"""Common-Data-Model ingestion.

Validates, scores and canonicalizes source-system records, and ingests
them idempotently through the processing coordinator.
"""

from modules.ingestion.errors import (
    IngestionError,
    TransformationError,
    UnknownSchemaError,
)
from modules.ingestion.models import (
    BatchDataItem,
    BatchIngestionSummary,
    IngestionResult,
    ValidationResult,
)
from modules.ingestion.schemas import (
    ConsistencyRule,
    EntitySchema,
    FieldSpec,
    FieldType,
    SchemaRegistry,
    default_registry,
)
from modules.ingestion.scoring import QualityWeights
from modules.ingestion.service import CDMIngestionService
from modules.ingestion.validator import IngestionValidator

__all__ = [
    "BatchDataItem",
    "BatchIngestionSummary",
    "CDMIngestionService",
    "ConsistencyRule",
    "EntitySchema",
    "FieldSpec",
    "FieldType",
    "IngestionError",
    "IngestionResult",
    "IngestionValidator",
    "QualityWeights",
    "SchemaRegistry",
    "TransformationError",
    "UnknownSchemaError",
    "ValidationResult",
]
