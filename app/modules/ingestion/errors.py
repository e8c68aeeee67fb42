"""Ingestion errors."""

from infrastructure.idempotency.errors import PermanentFailure, ProcessingError


class IngestionError(ProcessingError):
    """Base class for ingestion errors."""


class UnknownSchemaError(IngestionError, LookupError):
    """No schema is registered for the entity type and version."""


class TransformationError(PermanentFailure, IngestionError):
    """Canonicalization of a payload failed or was attempted on invalid data."""
