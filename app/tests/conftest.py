import sys
from pathlib import Path

# Ensure the application package root is on sys.path so importing application
# modules (e.g. `infrastructure.idempotency`) works during pytest collection.
project_root = str(Path(__file__).resolve().parents[1])
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import pytest
import structlog

from infrastructure.idempotency import InMemoryProcessingRecordStore
from infrastructure.idempotency.coordinator import IdempotencyCoordinator
from infrastructure.resilience.dead_letter import DeadLetterManager
from infrastructure.resilience.retry import RetryScheduler
from tests.factories import FakeClock, FixedRandom, make_processing_record


@pytest.fixture(autouse=True)
def clear_log_context():
    """Keep structlog context variables from leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def clock():
    """Manually advanced clock starting at T0."""
    return FakeClock()


@pytest.fixture
def store(clock):
    """Fresh in-memory record store on the fake clock."""
    return InMemoryProcessingRecordStore(clock=clock)


@pytest.fixture
def audit_events():
    """Audit events captured from the dead-letter manager."""
    return []


@pytest.fixture
def dead_letters(store, clock, audit_events):
    """Dead-letter manager recording its audit events."""

    def _sink(event):
        audit_events.append(event)
        return event

    return DeadLetterManager(store, clock=clock, audit_sink=_sink)


@pytest.fixture
def scheduler(clock):
    """Scheduler without jitter: delays are exactly base * 2^(n-1)."""
    return RetryScheduler(rng=FixedRandom(), clock=clock)


@pytest.fixture
def coordinator(store, scheduler, dead_letters, clock):
    """Coordinator wired to the fake clock and jitter-free scheduler."""
    coordinator = IdempotencyCoordinator(
        store, scheduler=scheduler, dead_letters=dead_letters, clock=clock
    )
    yield coordinator
    coordinator.shutdown()


@pytest.fixture
def record_factory():
    """Factory for ProcessingRecord instances."""
    return make_processing_record


@pytest.fixture
def seed_record(store):
    """Insert a record directly into the in-memory store."""

    def _seed(**kwargs):
        record = make_processing_record(**kwargs)
        store._records[record.key] = record
        return record.copy()

    return _seed
