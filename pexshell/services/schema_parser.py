"""Parse server schema documents into ``ResourceDefinition`` values.

Each API group exposes a root document mapping resource names to their
list endpoint and schema URL, and one schema document per resource::

    {"conference": {"list_endpoint": "/api/admin/configuration/v1/conference/",
                    "schema": "/api/admin/configuration/v1/conference/schema/"}}

Wire shapes are validated with pydantic. The rest of this module is the
single place that turns wire type tags into ``FieldKind`` and filtering
declarations into ordered ``FilterOperator`` tuples.
"""

import hashlib
import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from pexshell.errors import SchemaMalformedError
from pexshell.models.schema import (
    FieldDefinition,
    FieldKind,
    FilterOperator,
    Operation,
    OPERATION_ORDER,
    ResourceDefinition,
    applicable_operators,
)

logger = logging.getLogger(__name__)

# Operators a field gets when the server declares it filterable with 1 or 2.
ALL_FILTERS: tuple[FilterOperator, ...] = (
    FilterOperator.EXACT,
    FilterOperator.IEXACT,
    FilterOperator.CONTAINS,
    FilterOperator.ICONTAINS,
    FilterOperator.STARTSWITH,
    FilterOperator.ISTARTSWITH,
    FilterOperator.ENDSWITH,
    FilterOperator.IENDSWITH,
    FilterOperator.REGEX,
    FilterOperator.IREGEX,
    FilterOperator.LT,
    FilterOperator.LTE,
    FilterOperator.GT,
    FilterOperator.GTE,
)

_KIND_BY_WIRE_TYPE: dict[str, FieldKind] = {
    "string": FieldKind.STRING,
    "integer": FieldKind.INTEGER,
    "boolean": FieldKind.BOOLEAN,
    "float": FieldKind.FLOAT,
    "datetime": FieldKind.DATETIME,
    "date": FieldKind.DATETIME,
    "time": FieldKind.DATETIME,
    "related": FieldKind.REFERENCE,
    "list": FieldKind.NESTED,
    "dict": FieldKind.NESTED,
}

# HTTP methods the server lists, mapped to the operations they enable.
_LIST_METHODS = {"get": Operation.LIST, "post": Operation.CREATE}
_DETAIL_METHODS = {
    "get": Operation.GET,
    "patch": Operation.UPDATE,
    "delete": Operation.DELETE,
}


class RootEntry(BaseModel):
    """One resource entry of an API root document."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    list_endpoint: str
    schema_url: str = Field(alias="schema")


class WireField(BaseModel):
    """Field description as sent by the server."""

    model_config = ConfigDict(extra="ignore")

    type: str = "string"
    blank: bool = False
    default: Any = None
    help_text: str = ""
    nullable: bool = False
    readonly: bool = False
    related_type: str | None = None
    unique: bool = False
    valid_choices: list[Any] | None = None


class WireResourceSchema(BaseModel):
    """Resource schema document as sent by the server."""

    model_config = ConfigDict(extra="ignore")

    allowed_detail_http_methods: list[str] = []
    allowed_list_http_methods: list[str] = []
    default_limit: int | None = None
    fields: dict[str, WireField] = {}
    filtering: dict[str, int | list[str]] = {}
    ordering: list[str] = []


def parse_root(document: Any, target: str) -> dict[str, RootEntry]:
    """Parse an API root document.

    Args:
        document: Decoded JSON of the root document.
        target: Target address, used in error messages.

    Returns:
        Mapping of resource name to its root entry, in document order.

    Raises:
        SchemaMalformedError: If the document is not a mapping of entries.
    """
    if not isinstance(document, dict):
        raise SchemaMalformedError(target, "root document is not an object")
    entries: dict[str, RootEntry] = {}
    for name, raw in document.items():
        try:
            entries[name] = RootEntry.model_validate(raw)
        except PydanticValidationError as e:
            raise SchemaMalformedError(target, f"root entry '{name}': {e.error_count()} errors") from e
    return entries


def classify_field(wire: WireField) -> FieldKind:
    """Map a wire type tag (and choices) to a field kind."""
    kind = _KIND_BY_WIRE_TYPE.get(wire.type.lower(), FieldKind.UNKNOWN)
    if (
        kind is FieldKind.STRING
        and wire.valid_choices
        and all(isinstance(choice, str) for choice in wire.valid_choices)
    ):
        return FieldKind.ENUM
    if kind is FieldKind.UNKNOWN:
        logger.debug("schema_field_unknown_type type=%s", wire.type)
    return kind


def declared_operators(declaration: int | list[str] | None) -> list[FilterOperator]:
    """Expand a filtering declaration into operators.

    Integer declarations mean "all standard filters". Unrecognised operator
    names in a list are skipped.
    """
    if declaration is None:
        return []
    if isinstance(declaration, int):
        return list(ALL_FILTERS)
    operators = []
    for name in declaration:
        try:
            operators.append(FilterOperator(name))
        except ValueError:
            logger.debug("schema_filter_unknown_operator operator=%s", name)
    return operators


def build_field(
    name: str, wire: WireField, declaration: int | list[str] | None
) -> FieldDefinition:
    kind = classify_field(wire)
    allowed = applicable_operators(kind)
    declared = set(declared_operators(declaration))
    # Keep enum order so argument synthesis is stable.
    filters = tuple(op for op in FilterOperator if op in declared and op in allowed)
    return FieldDefinition(
        name=name,
        kind=kind,
        nullable=wire.nullable,
        readonly=wire.readonly,
        blank=wire.blank,
        default=wire.default,
        help_text=wire.help_text,
        choices=tuple(wire.valid_choices or ()),
        filters=filters,
        related_type=wire.related_type if kind is FieldKind.REFERENCE else None,
        unique=wire.unique,
    )


def parse_resource(
    api: str, name: str, entry: RootEntry, document: Any, target: str
) -> ResourceDefinition:
    """Build a resource definition from its schema document.

    Raises:
        SchemaMalformedError: If the document does not validate.
    """
    try:
        wire = WireResourceSchema.model_validate(document)
    except PydanticValidationError as e:
        raise SchemaMalformedError(
            target, f"schema for '{api}/{name}': {e.error_count()} errors"
        ) from e

    list_methods = {m.lower() for m in wire.allowed_list_http_methods}
    detail_methods = {m.lower() for m in wire.allowed_detail_http_methods}
    supported = {op for m, op in _LIST_METHODS.items() if m in list_methods}
    supported |= {op for m, op in _DETAIL_METHODS.items() if m in detail_methods}

    fields = tuple(
        build_field(field_name, wire_field, wire.filtering.get(field_name))
        for field_name, wire_field in wire.fields.items()
    )
    field_names = {f.name for f in fields}
    collection_path = entry.list_endpoint
    if not collection_path.endswith("/"):
        collection_path += "/"

    return ResourceDefinition(
        name=name,
        api=api,
        collection_path=collection_path,
        fields=fields,
        operations=tuple(op for op in OPERATION_ORDER if op in supported),
        paginated=Operation.LIST in supported,
        default_limit=wire.default_limit,
        ordering=tuple(f for f in wire.ordering if f in field_names),
    )


def canonical_json(document: Any) -> bytes:
    return json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")


def compute_fingerprint(target: str, roots: dict[str, Any]) -> str:
    """Hash the target identity and every API root document.

    Args:
        target: Normalised target address.
        roots: Mapping of API group to its decoded root document.

    Returns:
        Hex sha256 digest.
    """
    digest = hashlib.sha256()
    digest.update(target.encode("utf-8"))
    for api in sorted(roots):
        digest.update(b"\x00")
        digest.update(api.encode("utf-8"))
        digest.update(b"\x00")
        digest.update(canonical_json(roots[api]))
    return digest.hexdigest()
