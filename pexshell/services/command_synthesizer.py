"""Turn a schema model into a command tree.

This is the only place field kinds become argument specs. The output is a
plain data structure that a CLI (or a completion generator, or a test)
can walk; it holds no callables.

Synthesis is deterministic: resources in key order, operations in the
fixed order list, get, create, update, delete, and list arguments in
field order then operator order, followed by pagination arguments.
"""

import logging
from dataclasses import dataclass

from pexshell.errors import AmbiguousFieldError
from pexshell.models.schema import (
    FieldDefinition,
    FieldKind,
    FilterOperator,
    Operation,
    OPERATION_ORDER,
    ResourceDefinition,
    SchemaModel,
    argument_name,
)

logger = logging.getLogger(__name__)

IDENTIFIER_ARGUMENT = "object_id"
LIMIT_ARGUMENT = "limit"
OFFSET_ARGUMENT = "offset"
ORDER_BY_ARGUMENT = "order_by"
PAGINATION_ARGUMENTS = (LIMIT_ARGUMENT, OFFSET_ARGUMENT, ORDER_BY_ARGUMENT)


@dataclass(frozen=True)
class ArgumentSpec:
    """One argument of a synthesized command.

    Attributes:
        name: Argument name as typed by the user.
        kind: Kind used to parse the value.
        required: Whether the command fails without it.
        positional: Positional identifier rather than a named option.
        field: Field the argument feeds, None for pagination arguments.
        operator: Filter operator for list arguments.
        choices: Accepted values, for enums.
        multiple: Accepts several values (``in`` filters).
        help: One-line description.
    """

    name: str
    kind: FieldKind
    required: bool = False
    positional: bool = False
    field: str | None = None
    operator: FilterOperator | None = None
    choices: tuple = ()
    multiple: bool = False
    help: str = ""


@dataclass(frozen=True)
class CommandSpec:
    operation: Operation
    arguments: tuple[ArgumentSpec, ...]
    help: str = ""

    def argument(self, name: str) -> ArgumentSpec | None:
        for arg in self.arguments:
            if arg.name == name:
                return arg
        return None

    @property
    def argument_names(self) -> tuple[str, ...]:
        return tuple(arg.name for arg in self.arguments)


@dataclass(frozen=True)
class ResourceCommands:
    key: str
    api: str
    name: str
    commands: tuple[CommandSpec, ...]

    def command(self, operation: Operation) -> CommandSpec | None:
        for command in self.commands:
            if command.operation is operation:
                return command
        return None


@dataclass(frozen=True)
class CommandTree:
    resources: tuple[ResourceCommands, ...]
    fingerprint: str = ""

    def resource(self, key: str) -> ResourceCommands | None:
        for resource in self.resources:
            if resource.key == key:
                return resource
        return None

    @property
    def apis(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for resource in self.resources:
            seen.setdefault(resource.api, None)
        return tuple(seen)


def _field_help(field: FieldDefinition) -> str:
    return " ".join(field.help_text.split())


def _filter_help(field: FieldDefinition, operator: FilterOperator) -> str:
    if operator is FilterOperator.EXACT:
        return f"Filter: {field.name} equals value"
    if operator is FilterOperator.IN:
        return f"Filter: {field.name} is one of the given values"
    if operator is FilterOperator.ISNULL:
        return f"Filter: {field.name} is (or is not) null"
    return f"Filter: {field.name} {operator.value}"


def _list_arguments(resource: ResourceDefinition) -> list[ArgumentSpec]:
    arguments = []
    for field in resource.fields:
        for operator in field.filters:
            arguments.append(ArgumentSpec(
                name=argument_name(field.name, operator),
                kind=FieldKind.BOOLEAN if operator is FilterOperator.ISNULL else field.kind,
                field=field.name,
                operator=operator,
                choices=field.choices if operator is FilterOperator.EXACT else (),
                multiple=operator is FilterOperator.IN,
                help=_filter_help(field, operator),
            ))
    default_limit = f" (server default {resource.default_limit})" if resource.default_limit else ""
    arguments.append(ArgumentSpec(
        name=LIMIT_ARGUMENT,
        kind=FieldKind.INTEGER,
        help=f"Records per page{default_limit}",
    ))
    arguments.append(ArgumentSpec(
        name=OFFSET_ARGUMENT,
        kind=FieldKind.INTEGER,
        help="Index of the first record to return",
    ))
    if resource.ordering:
        arguments.append(ArgumentSpec(
            name=ORDER_BY_ARGUMENT,
            kind=FieldKind.ENUM,
            choices=tuple(resource.ordering) + tuple(f"-{f}" for f in resource.ordering),
            help="Sort by field; prefix with - for descending",
        ))
    return arguments


def _identifier_argument(resource: ResourceDefinition) -> ArgumentSpec:
    return ArgumentSpec(
        name=IDENTIFIER_ARGUMENT,
        kind=FieldKind.STRING,
        required=True,
        positional=True,
        help=f"Id of the {resource.name} object",
    )


def _write_arguments(resource: ResourceDefinition, operation: Operation) -> list[ArgumentSpec]:
    arguments = []
    for field in resource.fields:
        if field.readonly:
            continue
        if operation is Operation.UPDATE and field.name == resource.identifier_field:
            continue
        arguments.append(ArgumentSpec(
            name=field.name,
            kind=field.kind,
            required=operation is Operation.CREATE and field.required_on_create,
            field=field.name,
            choices=field.choices,
            help=_field_help(field),
        ))
    return arguments


def _check_unique(resource: ResourceDefinition, arguments: list[ArgumentSpec]) -> None:
    seen: set[str] = set()
    for arg in arguments:
        if arg.name in seen:
            raise AmbiguousFieldError(resource.key, arg.name)
        seen.add(arg.name)


def synthesize_command(resource: ResourceDefinition, operation: Operation) -> CommandSpec:
    """Build the command for one operation of one resource.

    Raises:
        AmbiguousFieldError: If two arguments would share a name.
    """
    if operation is Operation.LIST:
        arguments = _list_arguments(resource)
        summary = f"List {resource.name} objects"
    elif operation is Operation.GET:
        arguments = [_identifier_argument(resource)]
        summary = f"Get one {resource.name} object"
    elif operation is Operation.CREATE:
        arguments = _write_arguments(resource, operation)
        summary = f"Create a {resource.name} object"
    elif operation is Operation.UPDATE:
        arguments = [_identifier_argument(resource)] + _write_arguments(resource, operation)
        summary = f"Update fields of a {resource.name} object"
    else:
        arguments = [_identifier_argument(resource)]
        summary = f"Delete a {resource.name} object"
    _check_unique(resource, arguments)
    return CommandSpec(operation=operation, arguments=tuple(arguments), help=summary)


def synthesize(schema: SchemaModel) -> CommandTree:
    """Build the command tree for every resource of a schema.

    Raises:
        AmbiguousFieldError: If any resource has colliding argument names.
    """
    resources = []
    for key in sorted(schema.resources):
        resource = schema.resources[key]
        commands = tuple(
            synthesize_command(resource, operation)
            for operation in OPERATION_ORDER
            if resource.supports(operation)
        )
        resources.append(ResourceCommands(
            key=resource.key,
            api=resource.api,
            name=resource.name,
            commands=commands,
        ))
    logger.debug("synthesized resources=%d fingerprint=%s", len(resources), schema.fingerprint[:12])
    return CommandTree(resources=tuple(resources), fingerprint=schema.fingerprint)
