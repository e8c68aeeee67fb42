"""Pydantic models for CDM ingestion requests and results."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from infrastructure.idempotency import MessagePriority


class ValidationResult(BaseModel):
    """Outcome of validating one payload against an entity schema.

    Attributes:
        is_valid: False when any error was found
        errors: Missing required fields, type mismatches, parse failures
        warnings: Format, range and consistency problems
        quality_score: Weighted overall score, 0-100
        schema_version: Schema version the payload was checked against
        entity_type: Entity type the payload was checked against
        completeness: Share of expected fields that are present
        accuracy: Share of expected fields that passed type and format checks
        consistency: Share of expected fields not involved in a violated rule
    """

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    quality_score: int = Field(default=0, ge=0, le=100)
    schema_version: str = "1.0"
    entity_type: Optional[str] = None
    completeness: float = Field(default=0.0, ge=0, le=100)
    accuracy: float = Field(default=0.0, ge=0, le=100)
    consistency: float = Field(default=0.0, ge=0, le=100)

    @classmethod
    def rejected(
        cls, error: str, entity_type: Optional[str], schema_version: str
    ) -> "ValidationResult":
        """Result for a payload that could not be checked at all."""
        return cls(
            is_valid=False,
            errors=[error],
            quality_score=0,
            schema_version=schema_version,
            entity_type=entity_type,
        )


class BatchDataItem(BaseModel):
    """One entry of an ingestion batch."""

    model_config = ConfigDict(use_enum_values=False)

    source_system: str
    entity_type: str
    external_id: str
    raw_data: Union[str, Dict[str, Any]]
    message_id: Optional[str] = None
    schema_version: Optional[str] = None
    priority: MessagePriority = MessagePriority.NORMAL


class IngestionResult(BaseModel):
    """What happened to one ingested item."""

    message_id: str
    external_id: Optional[str] = None
    outcome: str = Field(..., description="completed, rejected, failed or dead_lettered")
    reason: Optional[str] = None
    error_message: Optional[str] = None
    low_quality: bool = False
    quality_score: Optional[int] = None
    output: Optional[Dict[str, Any]] = None
    invoked: bool = False


class BatchIngestionSummary(BaseModel):
    """Per-outcome counts for an ingestion batch."""

    batch_id: str
    tenant_id: str
    total: int = 0
    completed: int = 0
    rejected: int = 0
    failed: int = 0
    dead_lettered: int = 0
    low_quality: int = 0
    results: List[IngestionResult] = Field(default_factory=list)
