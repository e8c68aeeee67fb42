"""Shared fixtures for retry scheduling tests."""

import pytest

from infrastructure.resilience.retry import RetryScheduler
from tests.factories import FixedRandom


@pytest.fixture
def scheduler_factory(clock):
    """Factory for RetryScheduler instances with a pinned random source."""

    def _factory(
        base_delay_seconds: float = 30,
        max_delay_seconds: float = 3600,
        jitter_ratio: float = 0.2,
        fraction: float = 0.5,
    ) -> RetryScheduler:
        return RetryScheduler(
            base_delay_seconds=base_delay_seconds,
            max_delay_seconds=max_delay_seconds,
            jitter_ratio=jitter_ratio,
            rng=FixedRandom(fraction),
            clock=clock,
        )

    return _factory
