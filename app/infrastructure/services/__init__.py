"""
Dependency injection services.

Provides provider functions for the processing engine's singletons.
"""

from infrastructure.services.providers import (
    get_coordinator,
    get_dead_letter_manager,
    get_handler_registry,
    get_record_store,
    get_retry_sweeper,
    get_settings,
)

__all__ = [
    "get_coordinator",
    "get_dead_letter_manager",
    "get_handler_registry",
    "get_record_store",
    "get_retry_sweeper",
    "get_settings",
]
