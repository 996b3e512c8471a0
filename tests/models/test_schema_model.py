"""Tests for the in-memory schema model."""

import json
from dataclasses import FrozenInstanceError

import pytest

from pexshell.models.schema import (
    FieldDefinition,
    FieldKind,
    FilterOperator,
    Operation,
    ResourceDefinition,
    SchemaModel,
    applicable_operators,
    argument_name,
)


class TestOperatorApplicability:
    """Ordering operators only apply to orderable kinds."""

    def test_ordering_operators_for_integer(self):
        ops = applicable_operators(FieldKind.INTEGER)
        assert FilterOperator.GTE in ops
        assert FilterOperator.STARTSWITH not in ops

    def test_no_ordering_for_strings_or_booleans(self):
        for kind in (FieldKind.STRING, FieldKind.BOOLEAN, FieldKind.ENUM, FieldKind.REFERENCE):
            assert FilterOperator.LT not in applicable_operators(kind)

    def test_datetime_supports_text_and_ordering(self):
        ops = applicable_operators(FieldKind.DATETIME)
        assert FilterOperator.STARTSWITH in ops
        assert FilterOperator.LTE in ops

    def test_argument_names(self):
        assert argument_name("name", FilterOperator.EXACT) == "name"
        assert argument_name("name", FilterOperator.STARTSWITH) == "name__startswith"


class TestFieldDefinition:
    """Tests for derived field properties."""

    def test_required_on_create(self):
        assert FieldDefinition(name="name", kind=FieldKind.STRING).required_on_create

    @pytest.mark.parametrize("kwargs", [
        {"readonly": True},
        {"nullable": True},
        {"blank": True},
        {"default": "conference"},
        {"default": False},
    ])
    def test_not_required(self, kwargs):
        field = FieldDefinition(name="f", kind=FieldKind.STRING, **kwargs)
        assert not field.required_on_create

    def test_frozen(self):
        field = FieldDefinition(name="f", kind=FieldKind.STRING)
        with pytest.raises(FrozenInstanceError):
            field.name = "g"


class TestResourceDefinition:
    """Tests for keys, paths and lookups."""

    def test_key_includes_api(self, conference):
        assert conference.key == "configuration/conference"

    def test_detail_path_quotes_identifier(self, conference):
        assert conference.detail_path("12") == "/api/admin/configuration/v1/conference/12/"
        assert conference.detail_path("a/b") == "/api/admin/configuration/v1/conference/a%2Fb/"

    def test_command_resources(self, conference, lock_command):
        assert lock_command.is_command
        assert not conference.is_command

    def test_get_field(self, conference):
        assert conference.get_field("pin").kind is FieldKind.STRING
        assert conference.get_field("missing") is None


class TestSchemaModel:
    """Tests for building, lookup and serialization."""

    def test_resources_sorted_by_key(self, schema):
        assert list(schema.resources) == [
            "command/conference/lock",
            "configuration/conference",
            "status/worker_vm",
        ]

    def test_duplicate_keys_rejected(self):
        resource = ResourceDefinition(name="a", collection_path="/a/")
        with pytest.raises(ValueError, match="duplicate"):
            SchemaModel.build([resource, resource])

    def test_resolve_by_bare_name(self, schema):
        assert schema.resolve("conference").key == "configuration/conference"
        assert schema.resolve("configuration/conference").name == "conference"
        assert schema.resolve("nope") is None

    def test_resolve_ambiguous_bare_name(self):
        model = SchemaModel.build([
            ResourceDefinition(name="conference", api="configuration", collection_path="/c/"),
            ResourceDefinition(name="conference", api="status", collection_path="/s/"),
        ])
        assert model.resolve("conference") is None

    def test_mapping_is_read_only(self, schema):
        with pytest.raises(TypeError):
            schema.resources["x"] = None

    def test_round_trip_through_json(self, schema):
        """A model survives JSON serialization unchanged."""
        restored = SchemaModel.from_dict(json.loads(json.dumps(schema.to_dict())))
        assert dict(restored.resources) == dict(schema.resources)
        assert restored.fingerprint == schema.fingerprint
        assert restored.get("configuration/conference").operations == (
            Operation.LIST, Operation.GET, Operation.CREATE, Operation.UPDATE, Operation.DELETE,
        )
