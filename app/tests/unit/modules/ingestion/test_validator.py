"""Unit tests for IngestionValidator."""

import json

import pytest

from modules.ingestion import (
    ConsistencyRule,
    EntitySchema,
    FieldSpec,
    FieldType,
    IngestionValidator,
    QualityWeights,
    SchemaRegistry,
    TransformationError,
)
from tests.factories import make_customer_payload, make_order_payload

pytestmark = pytest.mark.unit


class TestValidateCustomer:
    """Validation of customer payloads."""

    def test_complete_payload(self, validator):
        result = validator.validate("customer", make_customer_payload())

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []
        assert result.quality_score == 100
        assert result.entity_type == "customer"
        assert result.schema_version == "1.0"

    def test_two_missing_fields_score_80(self, validator):
        payload = make_customer_payload()
        del payload["phone"]
        payload["loyalty_points"] = None

        result = validator.validate("customer", payload)

        assert result.is_valid is False
        assert result.errors == [
            "missing required field 'phone'",
            "missing required field 'loyalty_points'",
        ]
        assert result.completeness == 80.0
        assert result.quality_score == 80

    def test_blank_string_counts_as_missing(self, validator):
        result = validator.validate("customer", make_customer_payload(first_name="  "))

        assert "missing required field 'first_name'" in result.errors

    def test_format_problem_is_a_warning(self, validator):
        result = validator.validate(
            "customer", make_customer_payload(email="not-an-email")
        )

        assert result.is_valid is True
        assert result.warnings == ["field 'email' is not a valid email address"]
        assert result.accuracy == 90.0
        assert result.quality_score == 97

    def test_type_mismatch_is_an_error(self, validator):
        result = validator.validate(
            "customer", make_customer_payload(loyalty_points="many")
        )

        assert result.is_valid is False
        assert result.errors == ["field 'loyalty_points' expected integer, got str"]

    def test_consistency_violation(self, validator):
        result = validator.validate(
            "customer",
            make_customer_payload(updated_at="2023-01-01T00:00:00Z"),
        )

        assert result.is_valid is True
        assert result.warnings == [
            "updated_after_created: updated_at is earlier than created_at"
        ]
        assert result.consistency == 80.0
        assert result.quality_score == 93

    def test_rule_skipped_when_field_invalid(self, validator):
        result = validator.validate(
            "customer", make_customer_payload(updated_at="yesterday")
        )

        assert result.warnings == ["field 'updated_at' is not an ISO-8601 datetime"]

    def test_source_aliases(self, validator):
        payload = make_customer_payload()
        payload["Id"] = payload.pop("customer_id")
        payload["Email"] = payload.pop("email")

        result = validator.validate("customer", payload, source_system="salesforce")

        assert result.is_valid is True

    def test_source_aliases_only_apply_to_their_source(self, validator):
        payload = make_customer_payload()
        payload["Id"] = payload.pop("customer_id")

        result = validator.validate("customer", payload, source_system="dynamics")

        assert "missing required field 'customer_id'" in result.errors

    def test_accepts_json_text_and_bytes(self, validator):
        text = json.dumps(make_customer_payload())

        assert validator.validate("customer", text).quality_score == 100
        assert validator.validate("customer", text.encode()).quality_score == 100


class TestValidateOrder:
    """Validation of order payloads."""

    def test_complete_payload(self, validator):
        result = validator.validate("order", make_order_payload())

        assert result.is_valid is True
        assert result.quality_score == 100

    def test_total_mismatch(self, validator):
        result = validator.validate("order", make_order_payload(total_amount=50))

        assert result.is_valid is True
        assert result.warnings == [
            "total_matches_lines: total_amount does not equal quantity * unit_price"
        ]
        assert result.consistency == 62.5

    def test_optional_fields_counted_when_present(self, validator):
        result = validator.validate(
            "order", make_order_payload(shipped_at="2024-05-01T00:00:00Z")
        )

        assert result.warnings == [
            "shipped_after_ordered: shipped_at is earlier than ordered_at"
        ]
        assert result.consistency == pytest.approx(77.78)

    def test_unexpected_status(self, validator):
        result = validator.validate("order", make_order_payload(status="lost"))

        assert result.warnings == ["field 'status' has unexpected value 'lost'"]


class TestRejectedInput:
    """Input that cannot be checked at all."""

    @pytest.mark.parametrize(
        "raw", ["{not json", "[1, 2]", b"\xff\xfe", "42", 42]
    )
    def test_malformed(self, validator, raw):
        result = validator.validate("customer", raw)

        assert result.is_valid is False
        assert result.quality_score == 0
        assert len(result.errors) == 1

    def test_unknown_entity_type(self, validator):
        result = validator.validate("invoice", {"id": 1})

        assert result.is_valid is False
        assert "no schema for entity type 'invoice'" in result.errors[0]

    def test_unknown_version(self, validator):
        result = validator.validate("customer", make_customer_payload(), "9.9")

        assert result.schema_version == "9.9"
        assert result.quality_score == 0


class TestCustomSchemas:
    """Validator behavior with caller-supplied schemas and weights."""

    @pytest.fixture
    def registry(self):
        def explode(values):
            raise ZeroDivisionError

        return SchemaRegistry(
            [
                EntitySchema(
                    "widget",
                    "2.0",
                    fields=(
                        FieldSpec("sku"),
                        FieldSpec("weight", FieldType.NUMBER),
                    ),
                    rules=(
                        ConsistencyRule("never_true", ("sku",), explode, "broken"),
                    ),
                )
            ]
        )

    def test_rule_errors_count_as_violations(self, registry):
        validator = IngestionValidator(registry, default_schema_version="2.0")

        result = validator.validate("widget", {"sku": "W1", "weight": 1.5})

        assert result.warnings == ["never_true: broken"]
        assert result.consistency == 50.0

    def test_weights(self, registry):
        validator = IngestionValidator(
            registry, QualityWeights(1, 0, 0), default_schema_version="2.0"
        )

        result = validator.validate("widget", {"sku": "W1", "weight": 1.5})

        assert result.quality_score == 100

    def test_from_settings(self, monkeypatch):
        from infrastructure.configuration import Settings

        monkeypatch.setenv("DEFAULT_SCHEMA_VERSION", "2.0")

        validator = IngestionValidator.from_settings(Settings())

        assert validator.default_schema_version == "2.0"


class TestHash:
    """Tests for IngestionValidator.hash()."""

    def test_ignores_whitespace_and_key_order(self, validator):
        a = '{"b": 1, "a": [1, 2]}'
        b = '{\n  "a": [1,2],\n  "b": 1\n}'

        assert validator.hash(a) == validator.hash(b)
        assert validator.hash(a) == validator.hash({"a": [1, 2], "b": 1})
        assert validator.hash(a.encode()) == validator.hash(a)

    def test_distinguishes_content(self, validator):
        assert validator.hash('{"a": 1}') != validator.hash('{"a": 2}')

    def test_unparseable_text_hashed_as_is(self, validator):
        assert validator.hash("not json") == validator.hash("not json")
        assert validator.hash("not json") != validator.hash("not  json")
        assert len(validator.hash("not json")) == 64

    def test_invalid_utf8_hashed_raw(self, validator):
        assert validator.hash(b"\xff") != validator.hash(b"\xfe")
        assert validator.hash(b"\xff") == validator.hash(b"\xff")


class TestTransform:
    """Tests for IngestionValidator.transform()."""

    def test_builds_envelope(self, validator):
        envelope = validator.transform(
            "customer", make_customer_payload(), "crm"
        )

        assert envelope["entity_type"] == "customer"
        assert envelope["schema_version"] == "1.0"
        assert envelope["source_system"] == "crm"
        assert envelope["data"]["email"] == "ada.lovelace@example.com"
        assert envelope["data"]["created_at"] == "2024-01-01T10:00:00+00:00"

    def test_invalid_payload(self, validator):
        payload = make_customer_payload()
        del payload["email"]

        with pytest.raises(TransformationError) as exc_info:
            validator.transform("customer", payload, "crm")

        validation = exc_info.value.diagnostics["validation"]
        assert validation["errors"] == ["missing required field 'email'"]

    def test_reuses_validation(self, validator):
        validation = validator.validate("order", make_order_payload())

        envelope = validator.transform(
            "order", make_order_payload(), "shop", validation=validation
        )

        assert envelope["data"]["unit_price"] == 19.99
