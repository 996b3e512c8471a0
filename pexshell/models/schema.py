"""In-memory schema model: resources, fields, kinds and filter operators.

Pure data, no I/O. Instances are immutable once built; a schema refresh
replaces the whole ``SchemaModel`` rather than mutating it.

``to_dict``/``from_dict`` give the exact JSON-compatible shape used by the
on-disk schema cache, so a model survives a persist/load cycle unchanged
(same resources, fields and operators in the same order).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping
from urllib.parse import quote


class FieldKind(str, Enum):
    """Closed set of field kinds the command surface understands."""

    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    FLOAT = "float"
    DATETIME = "datetime"
    ENUM = "enum"
    NESTED = "nested"
    REFERENCE = "reference"
    UNKNOWN = "unknown"


class FilterOperator(str, Enum):
    """List filter operators, in the order arguments are synthesized."""

    EXACT = "exact"
    IEXACT = "iexact"
    CONTAINS = "contains"
    ICONTAINS = "icontains"
    STARTSWITH = "startswith"
    ISTARTSWITH = "istartswith"
    ENDSWITH = "endswith"
    IENDSWITH = "iendswith"
    REGEX = "regex"
    IREGEX = "iregex"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    IN = "in"
    ISNULL = "isnull"


class Operation(str, Enum):
    """Operations a resource can support."""

    LIST = "list"
    GET = "get"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Canonical operation order used wherever operations are enumerated.
OPERATION_ORDER: tuple[Operation, ...] = tuple(Operation)

ORDERING_OPERATORS = frozenset({
    FilterOperator.LT, FilterOperator.LTE, FilterOperator.GT, FilterOperator.GTE,
})
TEXT_OPERATORS = frozenset({
    FilterOperator.IEXACT,
    FilterOperator.CONTAINS,
    FilterOperator.ICONTAINS,
    FilterOperator.STARTSWITH,
    FilterOperator.ISTARTSWITH,
    FilterOperator.ENDSWITH,
    FilterOperator.IENDSWITH,
    FilterOperator.REGEX,
    FilterOperator.IREGEX,
})
_BASE_OPERATORS = frozenset({FilterOperator.EXACT, FilterOperator.IN, FilterOperator.ISNULL})

# Operators that make sense for each kind. The server declares which
# operators a field supports; only the intersection with this table is kept.
APPLICABLE_OPERATORS: Mapping[FieldKind, frozenset[FilterOperator]] = MappingProxyType({
    FieldKind.STRING: _BASE_OPERATORS | TEXT_OPERATORS,
    FieldKind.ENUM: _BASE_OPERATORS | TEXT_OPERATORS,
    FieldKind.DATETIME: _BASE_OPERATORS | TEXT_OPERATORS | ORDERING_OPERATORS,
    FieldKind.INTEGER: _BASE_OPERATORS | ORDERING_OPERATORS,
    FieldKind.FLOAT: _BASE_OPERATORS | ORDERING_OPERATORS,
    FieldKind.BOOLEAN: _BASE_OPERATORS,
    FieldKind.REFERENCE: _BASE_OPERATORS,
    FieldKind.NESTED: frozenset({FilterOperator.ISNULL}),
    FieldKind.UNKNOWN: frozenset({FilterOperator.EXACT}),
})


def applicable_operators(kind: FieldKind) -> frozenset[FilterOperator]:
    """Return the filter operators valid for a field kind."""
    return APPLICABLE_OPERATORS[kind]


def argument_name(field_name: str, operator: FilterOperator) -> str:
    """Return the list argument / query parameter name for a filter."""
    if operator is FilterOperator.EXACT:
        return field_name
    return f"{field_name}__{operator.value}"


@dataclass(frozen=True)
class FieldDefinition:
    """One field of a resource.

    Attributes:
        name: Field name as used in request bodies and filters.
        kind: Interpreted kind of the field.
        nullable: Whether null is an accepted value.
        readonly: Read-only fields are never create/update arguments.
        blank: Whether an empty value is accepted.
        default: Server-side default (JSON value); None means no default.
        help_text: Human description from the server.
        choices: Valid values for enum fields, in server order.
        filters: Supported list filter operators, in synthesis order.
        related_type: "to_one"/"to_many" for references.
        unique: Whether the server enforces uniqueness.
    """

    name: str
    kind: FieldKind
    nullable: bool = False
    readonly: bool = False
    blank: bool = False
    default: Any = None
    help_text: str = ""
    choices: tuple[Any, ...] = ()
    filters: tuple[FilterOperator, ...] = ()
    related_type: str | None = None
    unique: bool = False

    @property
    def required_on_create(self) -> bool:
        return not (
            self.readonly or self.nullable or self.blank or self.default is not None
        )

    def supports(self, operator: FilterOperator) -> bool:
        return operator in self.filters

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "nullable": self.nullable,
            "readonly": self.readonly,
            "blank": self.blank,
            "default": self.default,
            "help_text": self.help_text,
            "choices": list(self.choices),
            "filters": [op.value for op in self.filters],
            "related_type": self.related_type,
            "unique": self.unique,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldDefinition:
        return cls(
            name=data["name"],
            kind=FieldKind(data["kind"]),
            nullable=bool(data.get("nullable", False)),
            readonly=bool(data.get("readonly", False)),
            blank=bool(data.get("blank", False)),
            default=data.get("default"),
            help_text=data.get("help_text", ""),
            choices=tuple(data.get("choices", ())),
            filters=tuple(FilterOperator(op) for op in data.get("filters", ())),
            related_type=data.get("related_type"),
            unique=bool(data.get("unique", False)),
        )


@dataclass(frozen=True)
class ResourceDefinition:
    """A named remote resource and what can be done with it.

    Attributes:
        name: Resource name within its API group (e.g. "conference").
        api: API group the resource belongs to (e.g. "configuration").
        collection_path: Absolute path of the list endpoint, with trailing slash.
        fields: Fields in server order.
        operations: Supported operations in canonical order.
        paginated: Whether list responses are paged.
        default_limit: Server default page size.
        ordering: Fields the server can sort by.
        identifier_field: Primary key field, never sent on update.
    """

    name: str
    collection_path: str
    api: str = ""
    fields: tuple[FieldDefinition, ...] = ()
    operations: tuple[Operation, ...] = ()
    paginated: bool = True
    default_limit: int | None = None
    ordering: tuple[str, ...] = ()
    identifier_field: str = "id"

    @property
    def key(self) -> str:
        return f"{self.api}/{self.name}" if self.api else self.name

    @property
    def is_command(self) -> bool:
        """Command resources run actions; their responses carry no records."""
        return self.api == "command" or self.api.startswith("command/")

    def get_field(self, name: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def supports(self, operation: Operation) -> bool:
        return operation in self.operations

    def detail_path(self, identifier: str) -> str:
        return f"{self.collection_path}{quote(str(identifier), safe='')}/"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "api": self.api,
            "collection_path": self.collection_path,
            "fields": [f.to_dict() for f in self.fields],
            "operations": [op.value for op in self.operations],
            "paginated": self.paginated,
            "default_limit": self.default_limit,
            "ordering": list(self.ordering),
            "identifier_field": self.identifier_field,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceDefinition:
        return cls(
            name=data["name"],
            api=data.get("api", ""),
            collection_path=data["collection_path"],
            fields=tuple(FieldDefinition.from_dict(f) for f in data.get("fields", ())),
            operations=tuple(Operation(op) for op in data.get("operations", ())),
            paginated=bool(data.get("paginated", True)),
            default_limit=data.get("default_limit"),
            ordering=tuple(data.get("ordering", ())),
            identifier_field=data.get("identifier_field", "id"),
        )


@dataclass(frozen=True)
class SchemaModel:
    """Read-only mapping of resource key to definition, plus fingerprint."""

    resources: Mapping[str, ResourceDefinition] = field(
        default_factory=lambda: MappingProxyType({})
    )
    fingerprint: str = ""

    @classmethod
    def build(
        cls, resources: list[ResourceDefinition], fingerprint: str = ""
    ) -> SchemaModel:
        """Build a model with resources sorted by key.

        Raises:
            ValueError: If two resources share a key.
        """
        by_key: dict[str, ResourceDefinition] = {}
        for resource in sorted(resources, key=lambda r: r.key):
            if resource.key in by_key:
                raise ValueError(f"duplicate resource key: {resource.key}")
            by_key[resource.key] = resource
        return cls(resources=MappingProxyType(by_key), fingerprint=fingerprint)

    def __iter__(self) -> Iterator[ResourceDefinition]:
        return iter(self.resources.values())

    def __len__(self) -> int:
        return len(self.resources)

    def get(self, key: str) -> ResourceDefinition | None:
        return self.resources.get(key)

    def resolve(self, name: str) -> ResourceDefinition | None:
        """Look up by full key, or by bare name when exactly one resource has it."""
        resource = self.resources.get(name)
        if resource is not None:
            return resource
        matches = [r for r in self.resources.values() if r.name == name]
        return matches[0] if len(matches) == 1 else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "resources": [r.to_dict() for r in self.resources.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaModel:
        return cls.build(
            [ResourceDefinition.from_dict(r) for r in data.get("resources", ())],
            fingerprint=data.get("fingerprint", ""),
        )


@dataclass(frozen=True)
class CachedSchema:
    """A schema model together with where and when it was fetched."""

    model: SchemaModel
    target: str
    fingerprint: str
    retrieved_at: datetime

    def matches(self, fingerprint: str) -> bool:
        return bool(fingerprint) and self.fingerprint == fingerprint
