"""Fixtures for AWS client tests.

Provides a factory-as-fixture for configurable fake boto3 clients so the
executor can be exercised without AWS.
"""

from typing import Any, Dict, List, Optional
from unittest.mock import patch

import pytest
from infrastructure.clients.aws.session_provider import SessionProvider


class FakePaginator:
    """Fake boto3 paginator that yields provided pages."""

    def __init__(self, pages):
        self._pages = list(pages)
        self.calls: List[Dict[str, Any]] = []

    def paginate(self, **kwargs):
        self.calls.append(kwargs)
        for page in self._pages:
            yield page


class FakeClient:
    """Configurable fake boto3 client.

    ``api_responses`` maps method names to a response, an exception to
    raise, or a list of either consumed one call at a time.
    """

    def __init__(
        self,
        api_responses: Optional[Dict[str, Any]] = None,
        paginated_pages: Optional[List[Dict[str, Any]]] = None,
    ):
        self._api_responses = dict(api_responses or {})
        self.paginator = FakePaginator(paginated_pages or [])
        self._can_paginate = paginated_pages is not None
        self.calls: List[tuple] = []

    def can_paginate(self, method: str) -> bool:
        return self._can_paginate

    def get_paginator(self, method: str):
        return self.paginator

    def __getattr__(self, name: str):
        if name.startswith("_") or name not in self._api_responses:
            raise AttributeError(name)

        def _call(**kwargs):
            self.calls.append((name, kwargs))
            resp = self._api_responses[name]
            if isinstance(resp, list):
                resp = resp.pop(0)
            if isinstance(resp, Exception):
                raise resp
            return resp

        return _call


@pytest.fixture
def fake_client_factory():
    """Patch executor.get_boto3_client to return a FakeClient.

    Returns a callable taking FakeClient arguments and returning
    ``(client, get_boto3_client_mock)``.
    """
    patchers = []

    def _factory(**kwargs):
        client = FakeClient(**kwargs)
        patcher = patch(
            "infrastructure.clients.aws.executor.get_boto3_client",
            return_value=client,
        )
        mock = patcher.start()
        patchers.append(patcher)
        return client, mock

    yield _factory
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def no_sleep():
    """Skip backoff sleeps in the executor."""
    with patch("infrastructure.clients.aws.executor.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def session_provider():
    """Session provider pointed at a local endpoint."""
    return SessionProvider(region="ca-central-1", endpoint_url="http://localhost:8000")
