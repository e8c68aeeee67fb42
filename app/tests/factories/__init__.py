"""Test data factories for deterministic test data generation."""

from tests.factories.processing import (
    T0,
    FakeClock,
    FixedRandom,
    make_customer_payload,
    make_order_payload,
    make_processing_record,
)

__all__ = [
    "T0",
    "FakeClock",
    "FixedRandom",
    "make_customer_payload",
    "make_order_payload",
    "make_processing_record",
]
