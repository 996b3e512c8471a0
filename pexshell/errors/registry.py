"""Error code registry with E-XXXX format codes.

This module defines the error code system for pexshell, organizing errors
into categories:
- E-1xxx: Schema errors
- E-2xxx: Validation errors
- E-3xxx: Remote API errors
- E-4xxx: System/transport errors
- E-5xxx: Authentication errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    SCHEMA = "schema"  # E-1xxx
    VALIDATION = "validation"  # E-2xxx
    REMOTE_API = "remote_api"  # E-3xxx
    SYSTEM = "system"  # E-4xxx
    AUTH = "auth"  # E-5xxx


@dataclass(frozen=True)
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Schema errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.SCHEMA,
        title="Schema Unreachable",
        message_template="Could not fetch the API schema from {target}.",
        remediation="Check the address and your network connection, then run: pexshell cache",
        is_retryable=True,
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.SCHEMA,
        title="Schema Malformed",
        message_template="The API schema returned by {target} could not be parsed.",
        remediation="Verify the target is a supported management node and run: pexshell cache",
    ),
    "E-1003": ErrorCode(
        code="E-1003",
        category=ErrorCategory.SCHEMA,
        title="Ambiguous Field",
        message_template="Resource '{resource}' produces the argument '{argument}' more than once.",
        remediation="The server schema has colliding field names. Report it to the server administrator.",
    ),
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Unknown Field",
        message_template="Resource '{resource}' has no usable field '{field}'.",
        remediation="Check the field name with --help for this command.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Unknown Filter Operator",
        message_template="Field '{field}' of resource '{resource}' does not support the '{operator}' filter.",
        remediation="Use one of the filters listed in --help for this command.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Type Mismatch",
        message_template="Value {value!r} for field '{field}' of resource '{resource}' is not a valid {expected}.",
        remediation="Correct the value and retry.",
    ),
    "E-2004": ErrorCode(
        code="E-2004",
        category=ErrorCategory.VALIDATION,
        title="Missing Identifier",
        message_template="Operation '{operation}' on resource '{resource}' requires an object id.",
        remediation="Pass the object id as the first argument.",
    ),
    "E-2005": ErrorCode(
        code="E-2005",
        category=ErrorCategory.VALIDATION,
        title="Unexpected Identifier",
        message_template="Operation '{operation}' on resource '{resource}' does not take an object id.",
        remediation="Remove the object id and retry.",
    ),
    "E-2006": ErrorCode(
        code="E-2006",
        category=ErrorCategory.VALIDATION,
        title="Missing Required Field",
        message_template="Field '{field}' is required to create '{resource}'.",
        remediation="Supply a value for the field and retry.",
    ),
    "E-2007": ErrorCode(
        code="E-2007",
        category=ErrorCategory.VALIDATION,
        title="Unsupported Operation",
        message_template="Resource '{resource}' does not support '{operation}'.",
        remediation="Run --help on the resource to see the supported operations.",
    ),
    # Remote API errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.REMOTE_API,
        title="Unknown Resource",
        message_template="Resource '{resource}' is not present in the cached schema.",
        remediation="Refresh the schema cache with: pexshell cache",
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.REMOTE_API,
        title="Unexpected Response",
        message_template="The server response did not have the expected shape at '{path}'.",
        remediation="The server may run an unsupported version. Refresh the schema cache and retry.",
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.REMOTE_API,
        title="API Error",
        message_template="The server answered with status {status}: {detail}",
        remediation="Check the request arguments against the server's error message.",
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Transport Error",
        message_template="Error sending request: {detail}",
        remediation="Check the address and network connectivity, then retry.",
        is_retryable=True,
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.SYSTEM,
        title="Configuration Error",
        message_template="Configuration problem: {detail}",
        remediation="Fix the configuration file or environment variables and retry.",
    ),
    # Auth errors (E-5xxx)
    "E-5001": ErrorCode(
        code="E-5001",
        category=ErrorCategory.AUTH,
        title="Missing Credentials",
        message_template="No credentials are available for {target}.",
        remediation="Sign in with: pexshell login, or set PEX_ADDRESS, PEX_USER and PEX_PASS.",
    ),
    "E-5002": ErrorCode(
        code="E-5002",
        category=ErrorCategory.AUTH,
        title="Invalid Credentials",
        message_template="The credentials for {target} were rejected.",
        remediation="Sign in again with: pexshell login",
    ),
    "E-5003": ErrorCode(
        code="E-5003",
        category=ErrorCategory.AUTH,
        title="Session Expired",
        message_template="The session for {target} expired and could not be refreshed.",
        remediation="Sign in again with: pexshell login",
        is_retryable=True,
    ),
    "E-5004": ErrorCode(
        code="E-5004",
        category=ErrorCategory.AUTH,
        title="Authentication Failed",
        message_template="The request was still unauthorized after refreshing the session.",
        remediation="Check that the account has permission for this resource.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category."""
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
