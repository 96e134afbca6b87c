"""Validation utilities for edgefn configuration."""

import re

from edgefn.core.credentials import get_access_token
from edgefn.core.exceptions import AccessTokenError, ConfigError

FUNC_SLUG_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")


def validate_function_slug(slug: str) -> str:
    """Validate a function slug against the allowed character pattern.

    Returns:
        The slug unchanged.

    Raises:
        ConfigError: If the slug is empty or contains unsupported characters.
    """
    if not FUNC_SLUG_PATTERN.match(slug or ""):
        raise ConfigError(
            f"Invalid Function name: {slug!r}. Must start with at least one letter, "
            "and only include alphanumeric characters, underscores, and hyphens. "
            f"({FUNC_SLUG_PATTERN.pattern})"
        )
    return slug


def validate_access_token() -> str:
    """Validate that a management API access token is available.

    Returns:
        The access token.

    Raises:
        AccessTokenError: If no token is set in the environment or credentials file.
    """
    token = get_access_token()
    if not token:
        raise AccessTokenError()
    return token


def validate_access_token_with_context(operation: str) -> str:
    """Validate the access token with additional context about the operation."""
    try:
        return validate_access_token()
    except AccessTokenError as e:
        raise AccessTokenError(f"Cannot {operation}: {str(e)}") from e
