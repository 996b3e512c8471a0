"""Tests for synthesizing the command tree from a schema."""

import pytest

from pexshell.errors import AmbiguousFieldError
from pexshell.models.schema import (
    FieldDefinition,
    FieldKind,
    FilterOperator,
    Operation,
    ResourceDefinition,
    SchemaModel,
)
from pexshell.services.command_synthesizer import (
    IDENTIFIER_ARGUMENT,
    synthesize,
    synthesize_command,
)


class TestListCommand:
    """List commands get one argument per (field, operator) plus pagination."""

    def test_argument_names_in_order(self, conference):
        command = synthesize_command(conference, Operation.LIST)
        assert command.argument_names == (
            "id", "id__lt", "id__lte", "id__gt", "id__gte",
            "name", "name__startswith",
            "service_type", "service_type__in",
            "max_callrate_in",
            "max_callrate_in__lt", "max_callrate_in__lte",
            "max_callrate_in__gt", "max_callrate_in__gte",
            "creation_time__lt", "creation_time__gte", "creation_time__isnull",
            "limit", "offset", "order_by",
        )

    def test_no_argument_for_unfiltered_field(self, conference):
        command = synthesize_command(conference, Operation.LIST)
        assert command.argument("pin") is None
        assert command.argument("pin__startswith") is None

    def test_filter_argument_details(self, conference):
        command = synthesize_command(conference, Operation.LIST)
        exact = command.argument("service_type")
        assert exact.choices == ("conference", "lecture", "two_stage_dialing")
        assert exact.operator is FilterOperator.EXACT
        assert not exact.required

        in_arg = command.argument("service_type__in")
        assert in_arg.multiple
        assert in_arg.choices == ()

        isnull = command.argument("creation_time__isnull")
        assert isnull.kind is FieldKind.BOOLEAN
        assert isnull.field == "creation_time"

    def test_order_by_choices(self, conference):
        order_by = synthesize_command(conference, Operation.LIST).argument("order_by")
        assert order_by.choices == ("name", "id", "-name", "-id")

    def test_no_order_by_without_ordering(self, worker_vm):
        command = synthesize_command(worker_vm, Operation.LIST)
        assert command.argument("order_by") is None
        assert command.argument_names[-2:] == ("limit", "offset")


class TestWriteCommands:
    """Create and update commands take the writable fields."""

    def test_create_arguments(self, conference):
        command = synthesize_command(conference, Operation.CREATE)
        assert command.argument_names == (
            "name", "pin", "service_type", "allow_guests", "max_callrate_in", "aliases",
        )
        assert [a.name for a in command.arguments if a.required] == ["name"]

    def test_update_arguments_all_optional(self, conference):
        command = synthesize_command(conference, Operation.UPDATE)
        assert command.arguments[0].name == IDENTIFIER_ARGUMENT
        assert command.arguments[0].positional
        assert all(not a.required for a in command.arguments[1:])
        assert "id" not in command.argument_names

    @pytest.mark.parametrize("operation", [Operation.GET, Operation.DELETE])
    def test_identifier_only(self, conference, operation):
        command = synthesize_command(conference, operation)
        assert command.argument_names == (IDENTIFIER_ARGUMENT,)
        assert command.arguments[0].required


class TestSynthesize:
    """Tests for the whole tree."""

    def test_one_command_per_supported_operation(self, schema):
        tree = synthesize(schema)
        conference = tree.resource("configuration/conference")
        assert [c.operation for c in conference.commands] == [
            Operation.LIST, Operation.GET, Operation.CREATE, Operation.UPDATE, Operation.DELETE,
        ]
        worker_vm = tree.resource("status/worker_vm")
        assert [c.operation for c in worker_vm.commands] == [Operation.LIST, Operation.GET]
        lock = tree.resource("command/conference/lock")
        assert [c.operation for c in lock.commands] == [Operation.CREATE]

    def test_deterministic(self, schema):
        assert synthesize(schema) == synthesize(schema)
        rebuilt = SchemaModel.build(list(reversed(list(schema))), fingerprint=schema.fingerprint)
        assert synthesize(rebuilt) == synthesize(schema)

    def test_apis(self, schema):
        assert synthesize(schema).apis == ("command/conference", "configuration", "status")

    def test_ambiguous_field(self):
        resource = ResourceDefinition(
            name="thing",
            collection_path="/thing/",
            fields=(
                FieldDefinition(
                    name="a", kind=FieldKind.STRING, filters=(FilterOperator.STARTSWITH,)
                ),
                FieldDefinition(
                    name="a__startswith", kind=FieldKind.STRING, filters=(FilterOperator.EXACT,)
                ),
            ),
            operations=(Operation.LIST,),
        )
        with pytest.raises(AmbiguousFieldError) as exc_info:
            synthesize(SchemaModel.build([resource]))
        assert exc_info.value.argument == "a__startswith"

    def test_field_named_like_pagination_argument(self):
        resource = ResourceDefinition(
            name="thing",
            collection_path="/thing/",
            fields=(
                FieldDefinition(name="limit", kind=FieldKind.INTEGER, filters=(FilterOperator.EXACT,)),
            ),
            operations=(Operation.LIST,),
        )
        with pytest.raises(AmbiguousFieldError):
            synthesize_command(resource, Operation.LIST)
