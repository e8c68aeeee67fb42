"""
Factory functions for dependency injection.

Provides application-scoped singleton providers for the processing engine.
"""

from functools import lru_cache

from infrastructure.configuration import Settings
from infrastructure.idempotency.coordinator import IdempotencyCoordinator
from infrastructure.idempotency.factory import create_record_store
from infrastructure.idempotency.store import ProcessingRecordStore
from infrastructure.resilience.dead_letter import DeadLetterManager
from infrastructure.resilience.retry import HandlerRegistry, RetrySweeper


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    This is the single source of truth for settings across the entire application.
    The @lru_cache decorator ensures only ONE instance is created per process.

        from infrastructure.services.providers import get_settings
        settings = get_settings()

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()


@lru_cache
def get_record_store() -> ProcessingRecordStore:
    """
    Get application-scoped processing record store.

    The backend is chosen by PROCESSING_BACKEND. The in-memory store only
    deduplicates within this process.

    Returns:
        ProcessingRecordStore: Cached store instance.
    """
    return create_record_store(get_settings())


@lru_cache
def get_dead_letter_manager() -> DeadLetterManager:
    """Get application-scoped dead-letter manager sharing the record store."""
    return DeadLetterManager.from_settings(get_record_store(), get_settings())


@lru_cache
def get_coordinator() -> IdempotencyCoordinator:
    """
    Get application-scoped idempotency coordinator.

    Shares the record store and dead-letter manager singletons so operator
    actions and processing see the same state.

    Returns:
        IdempotencyCoordinator: Cached coordinator configured from settings.
    """
    return IdempotencyCoordinator.from_settings(
        get_record_store(),
        get_settings(),
        dead_letters=get_dead_letter_manager(),
    )


@lru_cache
def get_handler_registry() -> HandlerRegistry:
    """Get application-scoped registry of work functions per message type."""
    return HandlerRegistry()


@lru_cache
def get_retry_sweeper() -> RetrySweeper:
    """Get application-scoped retry sweeper."""
    return RetrySweeper.from_settings(
        get_coordinator(), get_handler_registry(), get_settings()
    )
