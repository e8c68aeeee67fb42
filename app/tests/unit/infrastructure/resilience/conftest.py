"""Fixtures for retry and dead-letter tests."""

import pytest

from infrastructure.resilience.retry import HandlerRegistry, RetrySweeper


@pytest.fixture
def registry():
    return HandlerRegistry()


@pytest.fixture
def sweeper(coordinator, registry):
    """Sweeper with a fixed worker id and short retention windows."""
    return RetrySweeper(
        coordinator,
        registry,
        batch_size=10,
        lease_seconds=60,
        retention_days=30,
        dead_letter_retention_days=90,
        worker_id="worker-test",
    )
