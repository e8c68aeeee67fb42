"""Unit tests for the default failure classifier."""

import asyncio
from concurrent.futures import CancelledError

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from infrastructure.idempotency import (
    FailureKind,
    PermanentFailure,
    TransientFailure,
    ValidationFailure,
    WorkCancelled,
    default_failure_classifier,
)

pytestmark = pytest.mark.unit


def _client_error(code):
    return ClientError({"Error": {"Code": code, "Message": "x"}}, "PutItem")


class TestDefaultFailureClassifier:
    """Tests for default_failure_classifier()."""

    @pytest.mark.parametrize(
        "exc,expected",
        [
            (WorkCancelled(), FailureKind.CANCELLED),
            (CancelledError(), FailureKind.CANCELLED),
            (asyncio.CancelledError(), FailureKind.CANCELLED),
            (PermanentFailure("bad"), FailureKind.PERMANENT),
            (ValidationFailure("invalid"), FailureKind.PERMANENT),
            (TransientFailure("later"), FailureKind.TRANSIENT),
            (ValueError("bug"), FailureKind.PERMANENT),
            (KeyError("missing"), FailureKind.PERMANENT),
            (TypeError("bug"), FailureKind.PERMANENT),
            (RuntimeError("flaky"), FailureKind.TRANSIENT),
            (TimeoutError("slow"), FailureKind.TRANSIENT),
        ],
    )
    def test_exception_mapping(self, exc, expected):
        assert default_failure_classifier(exc) == expected

    def test_aws_throttling_is_transient(self):
        assert (
            default_failure_classifier(_client_error("ThrottlingException"))
            == FailureKind.TRANSIENT
        )

    def test_aws_conflict_is_transient(self):
        assert (
            default_failure_classifier(_client_error("ConditionalCheckFailedException"))
            == FailureKind.TRANSIENT
        )

    def test_aws_validation_is_permanent(self):
        assert (
            default_failure_classifier(_client_error("ValidationException"))
            == FailureKind.PERMANENT
        )

    def test_aws_connection_error_is_transient(self):
        exc = EndpointConnectionError(endpoint_url="https://example.invalid")

        assert default_failure_classifier(exc) == FailureKind.TRANSIENT
