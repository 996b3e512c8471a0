"""Tests for exception messages and their CLI rendering."""

from pexshell.errors import (
    ApiResponseError,
    AuthFailedError,
    ConfigurationError,
    PipelineTransportError,
    SchemaMalformedError,
    TypeMismatchError,
    UnknownOperatorError,
    format_error,
)


class TestMessages:
    def test_rendered_from_template(self):
        error = UnknownOperatorError(resource="configuration/conference", field="pin", operator="startswith")
        assert str(error) == (
            "Field 'pin' of resource 'configuration/conference' does not support the 'startswith' filter."
        )
        assert error.field == "pin"

    def test_type_mismatch_uses_repr(self):
        error = TypeMismatchError("configuration/conference", "max_callrate_in", "fast", "integer")
        assert "'fast'" in str(error)

    def test_malformed_appends_detail(self):
        error = SchemaMalformedError("https://mgr", detail="fields is not a mapping")
        assert str(error).endswith("(fields is not a mapping)")

    def test_missing_placeholder_keeps_template(self):
        assert "{status}" in ApiResponseError._render({})


class TestFormatError:
    """format_error renders code, message, context, cause and action."""

    def test_full_rendering(self):
        error = UnknownOperatorError(resource="configuration/conference", field="pin", operator="startswith")
        lines = format_error(error).splitlines()
        assert lines[0].startswith("E-2002: Field 'pin'")
        assert lines[1] == "  Context: resource=configuration/conference, field=pin, operator=startswith"
        assert lines[2].startswith("  Action: ")

    def test_without_remediation(self):
        text = format_error(ConfigurationError("bad level"), include_remediation=False)
        assert text == "E-4002: Configuration problem: bad level"

    def test_transport_cause(self):
        error = PipelineTransportError(ConnectionError("refused"))
        text = format_error(error)
        assert "  Cause: refused" in text
        assert error.inner.args == ("refused",)

    def test_auth_failed(self):
        assert format_error(AuthFailedError()).startswith("E-5004: ")
