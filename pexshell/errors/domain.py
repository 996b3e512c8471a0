"""Typed domain exceptions for the schema, auth, translation and pipeline layers.

Every exception carries a registry code (see ``pexshell.errors.registry``)
and the context used to render its message, so callers can branch on the
exception type while the CLI renders a consistent, actionable message.

Usage:
    # In the translator
    raise UnknownOperatorError(resource="conference", field="pin", operator="startswith")

    # In the CLI
    try:
        page = await pipeline.execute(invocation)
    except PexShellError as e:
        console.print(format_error(e))
"""

from typing import Any

from pexshell.errors.registry import get_error


class PexShellError(Exception):
    """Base exception for all pexshell errors."""

    code: str = "E-4002"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.context = context
        super().__init__(message or self._render(context))

    @classmethod
    def _render(cls, context: dict[str, Any]) -> str:
        error_def = get_error(cls.code)
        if error_def is None:
            return f"Unknown error: {cls.code}"
        try:
            return error_def.message_template.format(**context)
        except (KeyError, IndexError):
            # Keep template if some placeholders are missing
            return error_def.message_template

    @property
    def message(self) -> str:
        return str(self)


class ConfigurationError(PexShellError):
    """Invalid or unreadable configuration."""

    code = "E-4002"

    def __init__(self, detail: str) -> None:
        super().__init__(detail=detail)


# -- Schema errors -----------------------------------------------------------


class SchemaError(PexShellError):
    """Base for failures fetching, parsing or interpreting a schema."""


class SchemaUnreachableError(SchemaError):
    """The schema could not be fetched from the target."""

    code = "E-1001"

    def __init__(self, target: str, cause: BaseException | None = None) -> None:
        super().__init__(target=target)
        self.target = target
        self.cause = cause


class SchemaMalformedError(SchemaError):
    """A schema document could not be parsed into the schema model."""

    code = "E-1002"

    def __init__(self, target: str, detail: str = "") -> None:
        super().__init__(target=target)
        self.target = target
        self.detail = detail

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} ({self.detail})" if self.detail else base


class AmbiguousFieldError(SchemaError):
    """Two fields of one resource would synthesize the same argument name."""

    code = "E-1003"

    def __init__(self, resource: str, argument: str) -> None:
        super().__init__(resource=resource, argument=argument)
        self.resource = resource
        self.argument = argument


# -- Auth errors -------------------------------------------------------------


class AuthError(PexShellError):
    """Base for authentication failures."""

    code = "E-5002"

    def __init__(self, target: str, message: str | None = None) -> None:
        super().__init__(message, target=target)
        self.target = target


class MissingCredentialsError(AuthError):
    """Neither override nor stored credentials are available."""

    code = "E-5001"


class InvalidCredentialsError(AuthError):
    """The target rejected the credentials."""

    code = "E-5002"


class SessionExpiredError(AuthError):
    """A refresh failed; the session is logged out."""

    code = "E-5003"


# -- Validation errors -------------------------------------------------------


class ValidationError(PexShellError):
    """Base for invocation problems detected before any network call."""

    code = "E-2001"

    def __init__(self, resource: str, **context: Any) -> None:
        super().__init__(resource=resource, **context)
        self.resource = resource


class UnknownFieldError(ValidationError):
    code = "E-2001"

    def __init__(self, resource: str, field: str) -> None:
        super().__init__(resource, field=field)
        self.field = field


class UnknownOperatorError(ValidationError):
    code = "E-2002"

    def __init__(self, resource: str, field: str, operator: str) -> None:
        super().__init__(resource, field=field, operator=operator)
        self.field = field
        self.operator = operator


class TypeMismatchError(ValidationError):
    code = "E-2003"

    def __init__(self, resource: str, field: str, value: Any, expected: str) -> None:
        super().__init__(resource, field=field, value=value, expected=expected)
        self.field = field
        self.value = value
        self.expected = expected


class MissingIdentifierError(ValidationError):
    code = "E-2004"

    def __init__(self, resource: str, operation: str) -> None:
        super().__init__(resource, operation=operation)
        self.operation = operation


class UnexpectedIdentifierError(ValidationError):
    code = "E-2005"

    def __init__(self, resource: str, operation: str) -> None:
        super().__init__(resource, operation=operation)
        self.operation = operation


class MissingRequiredFieldError(ValidationError):
    code = "E-2006"

    def __init__(self, resource: str, field: str) -> None:
        super().__init__(resource, field=field)
        self.field = field


class UnsupportedOperationError(ValidationError):
    code = "E-2007"

    def __init__(self, resource: str, operation: str) -> None:
        super().__init__(resource, operation=operation)
        self.operation = operation


# -- Translation errors ------------------------------------------------------


class TranslationError(PexShellError):
    """Base for response decoding failures."""

    code = "E-3002"


class UnexpectedShapeError(TranslationError):
    """The response envelope did not match what the operation expects."""

    code = "E-3002"

    def __init__(self, path: str = "$", detail: str = "") -> None:
        super().__init__(path=path)
        self.path = path
        self.detail = detail


# -- Pipeline errors ---------------------------------------------------------


class PipelineError(PexShellError):
    """Base for failures while executing an invocation."""

    code = "E-3001"


class UnknownResourceError(PipelineError):
    code = "E-3001"

    def __init__(self, resource: str) -> None:
        super().__init__(resource=resource)
        self.resource = resource


class PipelineTransportError(PipelineError):
    """Wraps the transport collaborator's error unchanged in ``inner``."""

    code = "E-4001"

    def __init__(self, inner: BaseException) -> None:
        super().__init__(detail=str(inner) or type(inner).__name__)
        self.inner = inner


class AuthFailedError(PipelineError):
    """Still unauthorized after the single refresh-and-retry."""

    code = "E-5004"

    def __init__(self, status: int = 401) -> None:
        super().__init__()
        self.status = status


class ApiResponseError(PipelineError):
    """The server answered with a non-success status other than 401."""

    code = "E-3003"

    def __init__(self, status: int, detail: str) -> None:
        super().__init__(status=status, detail=detail)
        self.status = status
        self.detail = detail
