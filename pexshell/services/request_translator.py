"""Translate invocations into HTTP requests and responses into result pages.

Everything an invocation can get wrong is checked here, before a request
exists: unsupported operations, identifier presence, unknown fields,
filters the field does not support and values that do not fit the field
kind. Nothing in this module performs I/O.

Example:
    from pexshell.services.request_translator import build_request, decode_response

    request = build_request(invocation, resource, token)
    response = await transport.send(request)
    page = decode_response(resource, invocation.operation, response)
"""

import json
from datetime import date, datetime
from typing import Any
from urllib.parse import parse_qs, urlsplit

from pexshell.errors import (
    ApiResponseError,
    MissingIdentifierError,
    MissingRequiredFieldError,
    TypeMismatchError,
    UnexpectedIdentifierError,
    UnexpectedShapeError,
    UnknownFieldError,
    UnknownOperatorError,
    UnsupportedOperationError,
)
from pexshell.models.invocation import HttpRequest, HttpResponse, Invocation, ResultPage, Token
from pexshell.models.schema import (
    FieldDefinition,
    FieldKind,
    FilterOperator,
    Operation,
    ResourceDefinition,
    TEXT_OPERATORS,
)
from pexshell.utils.redaction import sanitize_message

_METHODS = {
    Operation.LIST: "GET",
    Operation.GET: "GET",
    Operation.CREATE: "POST",
    Operation.UPDATE: "PATCH",
    Operation.DELETE: "DELETE",
}
_IDENTIFIED = frozenset({Operation.GET, Operation.UPDATE, Operation.DELETE})
_WITH_BODY = frozenset({Operation.CREATE, Operation.UPDATE})

_TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n", "off"})
_OPERATOR_ORDER = {op: index for index, op in enumerate(FilterOperator)}


# -- Value coercion ----------------------------------------------------------


def _mismatch(resource: ResourceDefinition, field: FieldDefinition, value: Any, expected: str):
    return TypeMismatchError(resource.key, field.name, value, expected)


def _coerce_bool(resource: ResourceDefinition, field: FieldDefinition, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise _mismatch(resource, field, value, "boolean")


def _decode_json_text(resource: ResourceDefinition, field: FieldDefinition, value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        raise _mismatch(resource, field, value, "JSON value") from None


def coerce_value(
    resource: ResourceDefinition,
    field: FieldDefinition,
    value: Any,
    allow_null: bool = True,
) -> Any:
    """Convert a user-supplied value to the JSON value for ``field``.

    Args:
        resource: Resource the field belongs to, for error context.
        field: Target field.
        value: Raw value, usually a string from the command line.
        allow_null: Whether ``None``/"null" may map to JSON null.

    Returns:
        JSON-compatible value.

    Raises:
        TypeMismatchError: If the value does not fit the field kind.
    """
    if value is None or (isinstance(value, str) and value == "null" and field.nullable):
        if allow_null and field.nullable:
            return None
        raise _mismatch(resource, field, value, f"non-null {field.kind.value}")

    kind = field.kind
    if kind is FieldKind.INTEGER:
        if isinstance(value, bool):
            raise _mismatch(resource, field, value, "integer")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                pass
        raise _mismatch(resource, field, value, "integer")

    if kind is FieldKind.FLOAT:
        if isinstance(value, bool):
            raise _mismatch(resource, field, value, "float")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                pass
        raise _mismatch(resource, field, value, "float")

    if kind is FieldKind.BOOLEAN:
        return _coerce_bool(resource, field, value)

    if kind is FieldKind.ENUM:
        if value not in field.choices:
            choices = ", ".join(str(c) for c in field.choices)
            raise _mismatch(resource, field, value, f"choice of ({choices})")
        return value

    if kind is FieldKind.DATETIME:
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, str):
            return value
        raise _mismatch(resource, field, value, "datetime")

    if kind is FieldKind.STRING:
        if isinstance(value, bool):
            raise _mismatch(resource, field, value, "string")
        if isinstance(value, (str, int, float)):
            return str(value)
        raise _mismatch(resource, field, value, "string")

    if kind is FieldKind.NESTED:
        if isinstance(value, str):
            return _decode_json_text(resource, field, value)
        if isinstance(value, (dict, list)):
            return value
        raise _mismatch(resource, field, value, "JSON object or list")

    if kind is FieldKind.REFERENCE:
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith(("{", "[")):
                return _decode_json_text(resource, field, stripped)
            return stripped
        if isinstance(value, (dict, list)):
            return value
        raise _mismatch(resource, field, value, "resource URI")

    return value


def _query_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def encode_filter_value(
    resource: ResourceDefinition,
    field: FieldDefinition,
    operator: FilterOperator,
    value: Any,
) -> str:
    """Coerce a filter value and render it as query parameter text."""
    if operator is FilterOperator.ISNULL:
        return _query_text(_coerce_bool(resource, field, value))
    if operator is FilterOperator.IN:
        items = value.split(",") if isinstance(value, str) else value
        if not isinstance(items, (list, tuple)) or not items:
            raise _mismatch(resource, field, value, "list of values")
        return ",".join(
            _query_text(coerce_value(resource, field, item, allow_null=False))
            for item in items
        )
    if operator in TEXT_OPERATORS:
        if not isinstance(value, str):
            raise _mismatch(resource, field, value, "string")
        return value
    return _query_text(coerce_value(resource, field, value, allow_null=False))


# -- Validation --------------------------------------------------------------


def parse_filter_name(resource: ResourceDefinition, name: str) -> tuple[str, FilterOperator]:
    """Split ``<field>`` / ``<field>__<operator>`` into a validated pair.

    Raises:
        UnknownFieldError: If no such field exists.
        UnknownOperatorError: If the field does not support the operator.
    """
    field_name, sep, suffix = name.rpartition("__")
    if sep and resource.get_field(name) is None:
        try:
            operator = FilterOperator(suffix)
        except ValueError:
            if resource.get_field(field_name) is None:
                raise UnknownFieldError(resource.key, name) from None
            raise UnknownOperatorError(resource.key, field_name, suffix) from None
    else:
        field_name, operator = name, FilterOperator.EXACT
    field = resource.get_field(field_name)
    if field is None:
        raise UnknownFieldError(resource.key, field_name)
    if not field.supports(operator):
        raise UnknownOperatorError(resource.key, field_name, operator.value)
    return field_name, operator


def _check_operation(invocation: Invocation, resource: ResourceDefinition) -> None:
    operation = invocation.operation
    if not resource.supports(operation):
        raise UnsupportedOperationError(resource.key, operation.value)
    if operation in _IDENTIFIED:
        if invocation.identifier is None or str(invocation.identifier) == "":
            raise MissingIdentifierError(resource.key, operation.value)
    elif invocation.identifier is not None:
        raise UnexpectedIdentifierError(resource.key, operation.value)
    if operation is not Operation.LIST and invocation.filters:
        raise UnknownFieldError(resource.key, invocation.filters[0][0])
    if operation not in _WITH_BODY and invocation.values:
        raise UnknownFieldError(resource.key, next(iter(invocation.values)))


def _writable_field(
    resource: ResourceDefinition, name: str, operation: Operation
) -> FieldDefinition:
    field = resource.get_field(name)
    if field is None or field.readonly:
        raise UnknownFieldError(resource.key, name)
    if operation is Operation.UPDATE and name == resource.identifier_field:
        raise UnknownFieldError(resource.key, name)
    return field


def _build_query(invocation: Invocation, resource: ResourceDefinition) -> tuple[tuple[str, str], ...]:
    field_order = {f.name: index for index, f in enumerate(resource.fields)}
    encoded: list[tuple[int, int, int, str, str]] = []
    for position, (field_name, operator, value) in enumerate(invocation.filters):
        if not isinstance(operator, FilterOperator):
            try:
                operator = FilterOperator(operator)
            except ValueError:
                raise UnknownOperatorError(resource.key, field_name, str(operator)) from None
        field = resource.get_field(field_name)
        if field is None:
            raise UnknownFieldError(resource.key, field_name)
        if not field.supports(operator):
            raise UnknownOperatorError(resource.key, field_name, operator.value)
        name = field_name if operator is FilterOperator.EXACT else f"{field_name}__{operator.value}"
        text = encode_filter_value(resource, field, operator, value)
        encoded.append(
            (field_order[field_name], _OPERATOR_ORDER[operator], position, name, text)
        )
    query = [(name, text) for *_, name, text in sorted(encoded)]

    if invocation.order_by is not None:
        order_by = str(invocation.order_by)
        if order_by.lstrip("-") not in resource.ordering or order_by.startswith("--"):
            raise UnknownFieldError(resource.key, order_by.lstrip("-"))
        query.append(("order_by", order_by))
    if invocation.limit is not None:
        if isinstance(invocation.limit, bool) or not isinstance(invocation.limit, int) or invocation.limit < 1:
            raise TypeMismatchError(resource.key, "limit", invocation.limit, "positive integer")
        query.append(("limit", str(invocation.limit)))
    if invocation.cursor is not None:
        cursor = str(invocation.cursor)
        if not cursor.isdigit():
            raise TypeMismatchError(resource.key, "offset", invocation.cursor, "non-negative integer")
        query.append(("offset", cursor))
    return tuple(query)


def _build_body(invocation: Invocation, resource: ResourceDefinition) -> bytes:
    operation = invocation.operation
    coerced: dict[str, Any] = {}
    for name, value in invocation.values.items():
        field = _writable_field(resource, name, operation)
        coerced[name] = coerce_value(resource, field, value)
    if operation is Operation.CREATE:
        for field in resource.fields:
            if field.required_on_create and field.name not in coerced:
                raise MissingRequiredFieldError(resource.key, field.name)
    # Schema field order keeps bodies reproducible.
    ordered = {f.name: coerced[f.name] for f in resource.fields if f.name in coerced}
    return json.dumps(ordered, separators=(",", ":")).encode("utf-8")


def build_request(
    invocation: Invocation,
    resource: ResourceDefinition,
    token: Token | None,
) -> HttpRequest:
    """Validate an invocation and build the HTTP request for it.

    Args:
        invocation: What to run.
        resource: Definition of the resource named by the invocation.
        token: Current session token; None sends no Authorization header.

    Returns:
        Fully specified request.

    Raises:
        ValidationError: Any subclass, when the invocation does not fit the
            resource. Raised before anything is built.
    """
    _check_operation(invocation, resource)
    operation = invocation.operation

    if operation in _IDENTIFIED:
        path = resource.detail_path(str(invocation.identifier))
    else:
        path = resource.collection_path

    query: tuple[tuple[str, str], ...] = ()
    if operation is Operation.LIST:
        query = _build_query(invocation, resource)

    headers = {"Accept": "application/json"}
    body = None
    if operation in _WITH_BODY:
        body = _build_body(invocation, resource)
        headers["Content-Type"] = "application/json"
    if token is not None:
        headers["Authorization"] = token.header

    return HttpRequest(
        method=_METHODS[operation],
        path=path,
        query=query,
        headers=headers,
        body=body,
    )


# -- Response decoding -------------------------------------------------------


def _decode_json(response: HttpResponse) -> Any:
    try:
        return json.loads(response.body)
    except ValueError as e:
        raise UnexpectedShapeError("$", f"response is not JSON: {e}") from e


def api_error(response: HttpResponse) -> ApiResponseError:
    """Build the error for a non-success response.

    Uses the server's ``{"error": "..."}`` message when present.
    """
    detail = ""
    if response.body:
        try:
            payload = json.loads(response.body)
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            detail = payload["error"]
        else:
            detail = response.body.decode("utf-8", errors="replace").strip()
    return ApiResponseError(response.status, sanitize_message(detail) or "no details")


def cursor_from_next(next_uri: Any) -> str | None:
    """Extract the offset cursor from a list envelope's ``meta.next``."""
    if next_uri is None:
        return None
    if not isinstance(next_uri, str):
        raise UnexpectedShapeError("meta.next", "expected a URI")
    offsets = parse_qs(urlsplit(next_uri).query).get("offset")
    if not offsets or not offsets[0].isdigit():
        raise UnexpectedShapeError("meta.next", "no offset in next URI")
    return offsets[0]


def _decode_list(payload: Any) -> ResultPage:
    if not isinstance(payload, dict):
        raise UnexpectedShapeError("$", "expected an object")
    objects = payload.get("objects")
    if not isinstance(objects, list):
        raise UnexpectedShapeError("objects", "expected a list")
    for index, record in enumerate(objects):
        if not isinstance(record, dict):
            raise UnexpectedShapeError(f"objects[{index}]", "expected an object")
    meta = payload.get("meta", {})
    if not isinstance(meta, dict):
        raise UnexpectedShapeError("meta", "expected an object")
    total_count = meta.get("total_count")
    if total_count is not None and (isinstance(total_count, bool) or not isinstance(total_count, int)):
        raise UnexpectedShapeError("meta.total_count", "expected an integer")
    return ResultPage(
        records=tuple(objects),
        cursor=cursor_from_next(meta.get("next")),
        total_count=total_count,
    )


def decode_response(
    resource: ResourceDefinition,
    operation: Operation,
    response: HttpResponse,
) -> ResultPage:
    """Unwrap a success response into a result page.

    Raises:
        ApiResponseError: If the response status is not a success.
        UnexpectedShapeError: If the body does not match the operation.
    """
    if not response.ok:
        raise api_error(response)

    if operation is Operation.LIST:
        return _decode_list(_decode_json(response))

    if operation is Operation.GET:
        payload = _decode_json(response)
        if not isinstance(payload, dict):
            raise UnexpectedShapeError("$", "expected an object")
        return ResultPage(records=(payload,))

    location = response.header("Location")
    if not response.body.strip() or resource.is_command:
        return ResultPage(location=location)
    payload = _decode_json(response)
    if isinstance(payload, dict):
        return ResultPage(records=(payload,), location=location)
    if isinstance(payload, list) and all(isinstance(r, dict) for r in payload):
        return ResultPage(records=tuple(payload), location=location)
    raise UnexpectedShapeError("$", "expected an object or list of objects")
