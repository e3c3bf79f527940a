"""
Input validation functions for upstream_sync.

Validates upstream names and server addresses before they are used to
build API paths or request bodies.
"""

import re

_UPSTREAM_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Upstream name")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_upstream_name(name: str) -> tuple[bool, str]:
    """
    Validate an upstream name.

    Args:
        name: The upstream name to validate

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Only letters, digits, '_', '.', and '-' are allowed
    """
    if not name or not name.strip():
        return (
            False,
            format_validation_error("Upstream name", "cannot be empty"),
        )

    if not _UPSTREAM_NAME_PATTERN.match(name):
        return (
            False,
            format_validation_error(
                "Upstream name",
                f"'{name}' may only contain letters, digits, '_', '.' and '-'",
            ),
        )

    return (True, "")


def validate_server_address(address: str) -> tuple[bool, str]:
    """
    Validate a server address (``host[:port]``, ``[ipv6][:port]`` or
    ``unix:/path``).

    Args:
        address: The address to validate

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not address or not address.strip():
        return (
            False,
            format_validation_error("Server address", "cannot be empty"),
        )

    if address != address.strip() or any(c.isspace() for c in address):
        return (
            False,
            format_validation_error(
                "Server address", f"'{address}' cannot contain whitespace"
            ),
        )

    if address.startswith("unix:"):
        if len(address) == len("unix:"):
            return (
                False,
                format_validation_error(
                    "Server address", "unix socket path cannot be empty"
                ),
            )
        return (True, "")

    if address.startswith("[") and "]" not in address:
        return (
            False,
            format_validation_error(
                "Server address", f"'{address}' has an unterminated '['"
            ),
        )

    return (True, "")
