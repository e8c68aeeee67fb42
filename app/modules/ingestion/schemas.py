"""Entity schemas for Common-Data-Model ingestion.

Schemas are immutable and passed to the validator at construction; the
registry never changes after it is built.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Mapping,
    Optional,
    Tuple,
)

from modules.ingestion.errors import UnknownSchemaError


class FieldType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    EMAIL = "email"
    OBJECT = "object"
    ARRAY = "array"


@dataclass(frozen=True)
class FieldSpec:
    """One declared field of an entity schema.

    Attributes:
        name: Canonical field name
        type: Expected type. A value of the wrong type is an error.
        required: Whether absence is an error
        aliases: Other names the field may arrive under, from any source
        pattern: Regex the string form must match (warning on mismatch)
        min_value, max_value: Numeric bounds (warning when outside)
        max_length: Maximum string length (warning when longer)
        allowed_values: Closed set of values (warning when outside)
    """

    name: str
    type: FieldType = FieldType.STRING
    required: bool = True
    aliases: Tuple[str, ...] = ()
    pattern: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    max_length: Optional[int] = None
    allowed_values: Optional[FrozenSet[Any]] = None


@dataclass(frozen=True)
class ConsistencyRule:
    """Cross-field rule. Violations are warnings.

    ``check`` receives the canonical field values (already coerced) and is
    only evaluated when every field in ``fields`` is present and valid.
    """

    name: str
    fields: Tuple[str, ...]
    check: Callable[[Mapping[str, Any]], bool]
    message: str


@dataclass(frozen=True)
class EntitySchema:
    """Declared shape of one entity type at one schema version.

    Attributes:
        entity_type: Entity name (e.g., "customer")
        version: Schema version (e.g., "1.0")
        fields: Declared fields
        rules: Cross-field consistency rules
        source_aliases: Per source system, source field name -> canonical name
    """

    entity_type: str
    version: str
    fields: Tuple[FieldSpec, ...]
    rules: Tuple[ConsistencyRule, ...] = ()
    source_aliases: Mapping[str, Mapping[str, str]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"duplicate field names in schema {self.entity_type}")
        object.__setattr__(
            self,
            "source_aliases",
            MappingProxyType(
                {k: MappingProxyType(dict(v)) for k, v in self.source_aliases.items()}
            ),
        )

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def alias_map(self, source_system: Optional[str] = None) -> Dict[str, str]:
        """Incoming field name -> canonical name for a source system."""
        mapping: Dict[str, str] = {}
        for spec in self.fields:
            for alias in spec.aliases:
                mapping[alias] = spec.name
        if source_system:
            mapping.update(self.source_aliases.get(source_system, {}))
        return mapping


class SchemaRegistry:
    """Immutable lookup of entity schemas by (entity_type, version)."""

    def __init__(self, schemas: Iterable[EntitySchema]):
        table: Dict[Tuple[str, str], EntitySchema] = {}
        for schema in schemas:
            key = (schema.entity_type, schema.version)
            if key in table:
                raise ValueError(f"schema registered twice: {key}")
            table[key] = schema
        self._schemas: Mapping[Tuple[str, str], EntitySchema] = MappingProxyType(table)

    def get(self, entity_type: str, version: str) -> EntitySchema:
        try:
            return self._schemas[(entity_type, version)]
        except KeyError:
            raise UnknownSchemaError(
                f"no schema for entity type '{entity_type}' version '{version}'"
            ) from None

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._schemas

    @property
    def entity_types(self) -> FrozenSet[str]:
        return frozenset(entity for entity, _ in self._schemas)


def _not_before(later: str, earlier: str) -> Callable[[Mapping[str, Any]], bool]:
    return lambda values: values[later] >= values[earlier]


def _order_total_matches(values: Mapping[str, Any]) -> bool:
    expected = values["quantity"] * values["unit_price"]
    return abs(values["total_amount"] - expected) <= 0.01


CUSTOMER_V1 = EntitySchema(
    entity_type="customer",
    version="1.0",
    fields=(
        FieldSpec("customer_id", max_length=64),
        FieldSpec("first_name", aliases=("firstName", "given_name"), max_length=100),
        FieldSpec("last_name", aliases=("lastName", "surname"), max_length=100),
        FieldSpec("email", FieldType.EMAIL, aliases=("email_address", "emailAddress")),
        FieldSpec("phone", pattern=r"^\+?[0-9 ()\-]{7,20}$"),
        FieldSpec("country", pattern=r"^[A-Z]{2}$"),
        FieldSpec("date_of_birth", FieldType.DATETIME, aliases=("dob",)),
        FieldSpec("loyalty_points", FieldType.INTEGER, min_value=0),
        FieldSpec("created_at", FieldType.DATETIME, aliases=("createdAt",)),
        FieldSpec("updated_at", FieldType.DATETIME, aliases=("updatedAt",)),
    ),
    rules=(
        ConsistencyRule(
            "updated_after_created",
            ("created_at", "updated_at"),
            _not_before("updated_at", "created_at"),
            "updated_at is earlier than created_at",
        ),
        ConsistencyRule(
            "born_before_created",
            ("date_of_birth", "created_at"),
            _not_before("created_at", "date_of_birth"),
            "date_of_birth is later than created_at",
        ),
    ),
    source_aliases={
        "salesforce": {"Id": "customer_id", "Email": "email", "Phone": "phone"},
        "dynamics": {"contactid": "customer_id", "emailaddress1": "email"},
    },
)

ORDER_V1 = EntitySchema(
    entity_type="order",
    version="1.0",
    fields=(
        FieldSpec("order_id", max_length=64),
        FieldSpec("customer_id", max_length=64),
        FieldSpec("quantity", FieldType.INTEGER, min_value=1),
        FieldSpec("unit_price", FieldType.NUMBER, min_value=0),
        FieldSpec("total_amount", FieldType.NUMBER, aliases=("total",), min_value=0),
        FieldSpec(
            "currency",
            allowed_values=frozenset({"CAD", "USD", "EUR", "GBP"}),
        ),
        FieldSpec(
            "status",
            allowed_values=frozenset({"placed", "paid", "shipped", "cancelled"}),
        ),
        FieldSpec("ordered_at", FieldType.DATETIME),
        FieldSpec("shipped_at", FieldType.DATETIME, required=False),
        FieldSpec("notes", required=False, max_length=2000),
    ),
    rules=(
        ConsistencyRule(
            "total_matches_lines",
            ("quantity", "unit_price", "total_amount"),
            _order_total_matches,
            "total_amount does not equal quantity * unit_price",
        ),
        ConsistencyRule(
            "shipped_after_ordered",
            ("ordered_at", "shipped_at"),
            _not_before("shipped_at", "ordered_at"),
            "shipped_at is earlier than ordered_at",
        ),
    ),
)

DEFAULT_SCHEMAS: Tuple[EntitySchema, ...] = (CUSTOMER_V1, ORDER_V1)


def default_registry() -> SchemaRegistry:
    return SchemaRegistry(DEFAULT_SCHEMAS)
