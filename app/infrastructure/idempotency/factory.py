"""Factory for creating processing record stores based on configuration."""

from typing import Optional

from infrastructure.clients.aws.dynamodb import DynamoDBClient
from infrastructure.clients.aws.session_provider import SessionProvider
from infrastructure.configuration import Settings
from infrastructure.idempotency.dynamodb import DynamoDBProcessingRecordStore
from infrastructure.idempotency.store import (
    InMemoryProcessingRecordStore,
    ProcessingRecordStore,
)
from infrastructure.logging import get_module_logger

logger = get_module_logger()


def create_record_store(
    settings: Settings, backend: Optional[str] = None
) -> ProcessingRecordStore:
    """Create the record store selected by configuration.

    Args:
        settings: Application settings
        backend: Optional backend override (memory, dynamodb).
            If None, uses settings.processing.backend

    Returns:
        ProcessingRecordStore implementation

    Raises:
        ValueError: If unknown backend specified

    Examples:
        >>> store = create_record_store(settings)  # Uses PROCESSING_BACKEND
        >>> store = create_record_store(settings, backend="memory")
    """
    backend = backend or settings.processing.backend

    if backend == "memory":
        logger.info("creating_in_memory_record_store")
        return InMemoryProcessingRecordStore()

    elif backend == "dynamodb":
        logger.info(
            "creating_dynamodb_record_store",
            table_name=settings.processing.dynamodb_table_name,
            region=settings.aws.AWS_REGION,
        )
        return DynamoDBProcessingRecordStore(
            client=DynamoDBClient(SessionProvider.from_settings(settings.aws)),
            table_name=settings.processing.dynamodb_table_name,
        )

    else:
        raise ValueError(
            f"Unknown processing backend: {backend}. Supported: memory, dynamodb"
        )
