"""Unit tests for processing errors."""

import json

import pytest

from infrastructure.idempotency import (
    ConcurrencyConflict,
    PermanentFailure,
    ProcessingError,
    StoreError,
    ValidationFailure,
    WorkCancelled,
)
from infrastructure.idempotency.errors import format_exception_details

pytestmark = pytest.mark.unit


class TestErrorHierarchy:
    """Tests for the exception hierarchy."""

    def test_validation_failure_is_permanent(self):
        assert issubclass(ValidationFailure, PermanentFailure)
        assert issubclass(PermanentFailure, ProcessingError)

    def test_concurrency_conflict_is_store_error(self):
        exc = ConcurrencyConflict("lost", current="record")

        assert isinstance(exc, StoreError)
        assert exc.current == "record"

    def test_diagnostics_copied(self):
        diagnostics = {"field": "email"}

        exc = ValidationFailure("invalid", diagnostics=diagnostics)
        diagnostics["field"] = "changed"

        assert exc.diagnostics == {"field": "email"}

    def test_work_cancelled_default_message(self):
        assert str(WorkCancelled()) == "Cancelled"


class TestFormatExceptionDetails:
    """Tests for format_exception_details()."""

    def test_includes_type_message_and_diagnostics(self):
        try:
            raise ValidationFailure("bad", diagnostics={"validation": {"is_valid": False}})
        except ValidationFailure as exc:
            details = json.loads(format_exception_details(exc, {"failure_kind": "permanent"}))

        assert details["type"] == "ValidationFailure"
        assert details["message"] == "bad"
        assert details["diagnostics"]["validation"] == {"is_valid": False}
        assert details["diagnostics"]["failure_kind"] == "permanent"
        assert "Traceback" in details["traceback"]

    def test_traceback_truncated(self):
        exc = RuntimeError("x" * 10000)

        details = json.loads(format_exception_details(exc))

        assert len(details["traceback"]) <= 4000
        assert details["diagnostics"] == {}
