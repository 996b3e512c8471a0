"""Error handling framework for pexshell.

This package provides:
- Error code registry with E-XXXX format codes
- Typed exceptions for the schema, auth, validation, translation and
  pipeline layers
- Error formatting for CLI display

Error categories:
- E-1xxx: Schema errors
- E-2xxx: Validation errors
- E-3xxx: Remote API errors
- E-4xxx: System/transport errors
- E-5xxx: Authentication errors
"""

from pexshell.errors.domain import (
    AmbiguousFieldError,
    ApiResponseError,
    AuthError,
    AuthFailedError,
    ConfigurationError,
    InvalidCredentialsError,
    MissingCredentialsError,
    MissingIdentifierError,
    MissingRequiredFieldError,
    PexShellError,
    PipelineError,
    PipelineTransportError,
    SchemaError,
    SchemaMalformedError,
    SchemaUnreachableError,
    SessionExpiredError,
    TranslationError,
    TypeMismatchError,
    UnexpectedIdentifierError,
    UnexpectedShapeError,
    UnknownFieldError,
    UnknownOperatorError,
    UnknownResourceError,
    UnsupportedOperationError,
    ValidationError,
)
from pexshell.errors.formatter import format_error
from pexshell.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "format_error",
    # Exceptions
    "PexShellError",
    "ConfigurationError",
    "SchemaError",
    "SchemaUnreachableError",
    "SchemaMalformedError",
    "AmbiguousFieldError",
    "AuthError",
    "MissingCredentialsError",
    "InvalidCredentialsError",
    "SessionExpiredError",
    "ValidationError",
    "UnknownFieldError",
    "UnknownOperatorError",
    "TypeMismatchError",
    "MissingIdentifierError",
    "UnexpectedIdentifierError",
    "MissingRequiredFieldError",
    "UnsupportedOperationError",
    "TranslationError",
    "UnexpectedShapeError",
    "PipelineError",
    "UnknownResourceError",
    "PipelineTransportError",
    "AuthFailedError",
    "ApiResponseError",
]
