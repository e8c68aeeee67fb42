"""Exponential backoff with jitter for failed processing attempts."""

import random
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional, Protocol

from infrastructure.idempotency.models import utc_now

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

MIN_DELAY_SECONDS = 1.0
# 2 ** 62 already dwarfs any sensible cap
_MAX_EXPONENT = 62


class RandomSource(Protocol):
    """Anything with ``uniform`` (``random.Random`` in production)."""

    def uniform(self, a: float, b: float) -> float: ...


class RetryScheduler:
    """Computes when a failed record should next be attempted.

    Delay calculation: min(base * 2 ^ (attempt - 1), max) +/- jitter,
    never less than one second.

    Example with defaults (base=30s, max=3600s, jitter 20%):
        Attempt 1: 30s (24-36s)
        Attempt 2: 60s (48-72s)
        Attempt 3: 120s (96-144s)
        Attempt 8+: 3600s (2880-4320s)

    Attributes:
        base_delay_seconds: Delay after the first failed attempt
        max_delay_seconds: Cap on the un-jittered delay
        jitter_ratio: Jitter as a fraction of the delay, in [0, 1)
    """

    def __init__(
        self,
        base_delay_seconds: float = 30,
        max_delay_seconds: float = 3600,
        jitter_ratio: float = 0.2,
        rng: Optional[RandomSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if base_delay_seconds <= 0:
            raise ValueError("base_delay_seconds must be positive")
        if max_delay_seconds < base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if not 0 <= jitter_ratio < 1:
            raise ValueError("jitter_ratio must be in [0, 1)")
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.jitter_ratio = jitter_ratio
        self._rng: RandomSource = rng or random.Random()
        self._clock = clock or utc_now

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        rng: Optional[RandomSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "RetryScheduler":
        processing = settings.processing
        return cls(
            base_delay_seconds=processing.base_retry_delay_seconds,
            max_delay_seconds=processing.max_retry_delay_seconds,
            jitter_ratio=processing.retry_jitter_ratio,
            rng=rng,
            clock=clock,
        )

    def delay_seconds(
        self,
        attempt_count: int,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ) -> float:
        """Un-jittered delay after ``attempt_count`` failed attempts."""
        base = self.base_delay_seconds if base_delay is None else base_delay
        cap = self.max_delay_seconds if max_delay is None else max_delay
        exponent = min(max(attempt_count, 1) - 1, _MAX_EXPONENT)
        return float(min(cap, base * (2**exponent)))

    def jittered_delay_seconds(
        self,
        attempt_count: int,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        jitter_ratio: Optional[float] = None,
    ) -> float:
        ratio = self.jitter_ratio if jitter_ratio is None else jitter_ratio
        delay = self.delay_seconds(attempt_count, base_delay, max_delay)
        jitter = delay * ratio * self._rng.uniform(-1.0, 1.0)
        return max(MIN_DELAY_SECONDS, delay + jitter)

    def next_retry_at(
        self,
        attempt_count: int,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        jitter_ratio: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> datetime:
        """When to retry after ``attempt_count`` failed attempts.

        Args:
            attempt_count: Attempts made so far (1 after the first failure)
            base_delay, max_delay, jitter_ratio: Per-call overrides
            now: Reference time. Defaults to the scheduler's clock.
        """
        now = now or self._clock()
        delay = self.jittered_delay_seconds(
            attempt_count, base_delay, max_delay, jitter_ratio
        )
        return now + timedelta(seconds=delay)
