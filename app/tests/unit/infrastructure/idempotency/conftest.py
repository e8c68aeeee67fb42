"""Fixtures for idempotency tests."""

import pytest

from infrastructure.configuration import Settings


@pytest.fixture
def settings_factory(monkeypatch):
    """Build Settings from environment overrides."""

    def _factory(**env):
        for name, value in env.items():
            monkeypatch.setenv(name, str(value))
        return Settings()

    return _factory
