"""Click commands generated from a command tree.

The tree is synthesized from the persisted schema at start-up, so the
command line mirrors the target's API without any hard-coded resource::

    pexshell configuration conference list --name__startswith a
    pexshell configuration conference get 12
    pexshell command conference lock create --conference_id 12

Values are passed through as text; the request translator validates and
coerces them so every command gets the same error reporting.
"""

import logging
from typing import Any, Callable

import click

from pexshell.models.invocation import Invocation
from pexshell.models.schema import Operation
from pexshell.services.command_synthesizer import (
    IDENTIFIER_ARGUMENT,
    LIMIT_ARGUMENT,
    OFFSET_ARGUMENT,
    ORDER_BY_ARGUMENT,
    ArgumentSpec,
    CommandSpec,
    CommandTree,
    ResourceCommands,
)

logger = logging.getLogger(__name__)

STREAM_PARAM = "pex_stream"
MAX_PARAM = "pex_max"

# Called with the invocation and the list display options.
InvocationHandler = Callable[[Invocation, bool, "int | None"], None]


def _argument_help(arg: ArgumentSpec) -> str:
    help_text = arg.help
    if arg.choices and arg.name != ORDER_BY_ARGUMENT:
        help_text = f"{help_text} [choices: {', '.join(str(c) for c in arg.choices)}]".strip()
    if arg.multiple:
        help_text = f"{help_text} (repeat or comma-separate)".strip()
    return help_text


def _click_param(arg: ArgumentSpec) -> click.Parameter:
    if arg.positional:
        return click.Argument([arg.name], required=arg.required)
    if arg.name in (LIMIT_ARGUMENT, OFFSET_ARGUMENT):
        lowest = 1 if arg.name == LIMIT_ARGUMENT else 0
        return click.Option(
            [f"--{arg.name}", arg.name], type=click.IntRange(min=lowest), help=arg.help
        )
    if arg.name == ORDER_BY_ARGUMENT:
        return click.Option(
            [f"--{arg.name}", arg.name], type=click.Choice(list(arg.choices)), help=arg.help
        )
    return click.Option(
        [f"--{arg.name}", arg.name],
        required=arg.required,
        multiple=arg.multiple,
        help=_argument_help(arg),
    )


def invocation_from_params(
    resource: ResourceCommands, command: CommandSpec, params: dict[str, Any]
) -> Invocation:
    """Build an invocation from parsed command line values.

    Arguments that were not given (None, or empty for repeatable options)
    are left out entirely.
    """
    filters = []
    values: dict[str, Any] = {}
    for arg in command.arguments:
        value = params.get(arg.name)
        if value is None or (arg.multiple and not value):
            continue
        if arg.operator is not None:
            if arg.multiple:
                value = [part for item in value for part in str(item).split(",")]
            filters.append((arg.field, arg.operator, value))
        elif arg.field is not None:
            values[arg.field] = value

    limit = params.get(LIMIT_ARGUMENT)
    offset = params.get(OFFSET_ARGUMENT)
    identifier = params.get(IDENTIFIER_ARGUMENT)
    return Invocation(
        resource=resource.key,
        operation=command.operation,
        identifier=str(identifier) if identifier is not None else None,
        values=values,
        filters=tuple(filters),
        limit=limit,
        cursor=str(offset) if offset is not None else None,
        order_by=params.get(ORDER_BY_ARGUMENT),
    )


def build_operation_command(
    resource: ResourceCommands, command: CommandSpec, handler: InvocationHandler
) -> click.Command:
    params = [_click_param(arg) for arg in command.arguments]
    if command.operation is Operation.LIST:
        params.append(click.Option(
            ["--stream", STREAM_PARAM],
            is_flag=True,
            help="Print records one per line as pages arrive",
        ))
        params.append(click.Option(
            ["--max", MAX_PARAM],
            type=click.IntRange(min=1),
            help="Stop after this many records",
        ))

    def callback(**kwargs: Any) -> None:
        stream = bool(kwargs.pop(STREAM_PARAM, False))
        max_records = kwargs.pop(MAX_PARAM, None)
        invocation = invocation_from_params(resource, command, kwargs)
        handler(invocation, stream, max_records)

    return click.Command(
        name=command.operation.value,
        params=params,
        callback=callback,
        help=command.help,
    )


def _group_for_path(parent: click.Group, parts: list[str]) -> click.Group:
    group = parent
    for part in parts:
        existing = group.commands.get(part)
        if not isinstance(existing, click.Group):
            existing = click.Group(name=part, help=f"{part} API")
            group.add_command(existing)
        group = existing
    return group


def register_api_commands(
    root: click.Group, tree: CommandTree, handler: InvocationHandler
) -> int:
    """Attach ``<api...> <resource> <operation>`` commands to ``root``.

    Returns:
        Number of resources registered.
    """
    count = 0
    for resource in tree.resources:
        api_parts = [p for p in resource.api.split("/") if p]
        if api_parts and api_parts[0] in root.commands and not isinstance(
            root.commands[api_parts[0]], click.Group
        ):
            logger.warning("Skipping API group '%s': name is a built-in command", api_parts[0])
            continue
        parent = _group_for_path(root, api_parts)
        group = click.Group(name=resource.name, help=f"Operations on {resource.name}")
        for command in resource.commands:
            group.add_command(build_operation_command(resource, command, handler))
        parent.add_command(group)
        count += 1
    logger.debug("cli_api_commands_registered resources=%d", count)
    return count
