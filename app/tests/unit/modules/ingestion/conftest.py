"""Fixtures for CDM ingestion tests."""

import pytest

from modules.ingestion import CDMIngestionService, IngestionValidator


@pytest.fixture
def validator():
    """Validator over the default customer and order schemas."""
    return IngestionValidator()


@pytest.fixture
def sunk():
    """Envelopes handed to the ingestion sink, as (tenant_id, envelope)."""
    return []


@pytest.fixture
def ingestion_service(coordinator, validator, sunk):
    """Ingestion service whose sink records every envelope."""
    return CDMIngestionService(
        coordinator,
        validator=validator,
        sink=lambda tenant_id, envelope: sunk.append((tenant_id, envelope)),
    )
