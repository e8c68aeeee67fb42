"""Fixtures for infrastructure.logging tests."""

import pytest
from unittest.mock import Mock

from infrastructure.configuration import Settings


@pytest.fixture
def mock_settings():
    """Mock Settings instance for testing."""
    settings = Mock(spec=Settings)
    settings.LOG_LEVEL = "INFO"
    settings.PREFIX = "dev-"
    settings.GIT_SHA = "abc123"
    settings.is_production = False
    return settings


@pytest.fixture
def event_dict():
    """A log event as the processors receive it."""
    return {
        "event": "processing_failed",
        "tenant_id": "tenant-a",
        "message_id": "order-42",
        "attempt_count": 2,
    }
