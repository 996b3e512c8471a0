"""Error formatting for user display.

Renders a ``PexShellError`` with its registry code, the resource/field
context that caused it, and the remediation from the registry.
"""

from pexshell.errors.domain import PexShellError
from pexshell.errors.registry import get_error

# Context keys worth echoing back; the rest is already in the message.
_LOCATION_KEYS = ("resource", "field", "operator", "argument", "path")


def format_error(error: PexShellError, include_remediation: bool = True) -> str:
    """Format error for display to user.

    Args:
        error: The PexShellError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Multi-line formatted string suitable for user display.
    """
    lines = [f"{error.code}: {error}"]

    location = [
        f"{key}={error.context[key]}"
        for key in _LOCATION_KEYS
        if error.context.get(key)
    ]
    if location:
        lines.append(f"  Context: {', '.join(location)}")

    cause = getattr(error, "inner", None) or getattr(error, "cause", None)
    if cause is not None:
        lines.append(f"  Cause: {cause}")

    error_def = get_error(error.code)
    if include_remediation and error_def is not None:
        lines.append(f"  Action: {error_def.remediation}")

    return "\n".join(lines)
