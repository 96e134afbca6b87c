"""Custom exceptions for edgefn.

Every failure that aborts a function deployment derives from EdgeFnError.
Walk warnings (missing imports, directories matched by static patterns) are
logged rather than raised.
"""

from typing import Any, Dict, Optional


class EdgeFnError(Exception):
    """Base exception for all bundling and deployment errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigError(EdgeFnError):
    """Raised for invalid slugs, unresolved entrypoints or bad import maps."""

    pass


class AccessTokenError(ConfigError):
    """Raised when no access token is configured for the management API."""

    def __init__(self, message: str | None = None):
        """Initialize with optional custom message.

        Args:
            message: Optional custom error message. If not provided, uses default.
        """
        if message is None:
            message = self._default_message()
        super().__init__(message)

    @staticmethod
    def _default_message() -> str:
        return """EDGEFN_ACCESS_TOKEN environment variable is required but not set.

Deploying functions calls the management API, which needs a personal
access token.

Set your access token using one of these methods:

  1. Environment variable:
     export EDGEFN_ACCESS_TOKEN=your_token_here

  2. In your project's .env file:
     echo "EDGEFN_ACCESS_TOKEN=your_token_here" >> .env

  3. In the credentials file (~/.config/edgefn/credentials.toml):
     access_token = "your_token_here"
"""


class BundleError(EdgeFnError):
    """Raised when the bundler exits non-zero or produces no artifact."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        output: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.returncode = returncode
        self.output = output
        if output:
            message = f"{message}\n{output.rstrip()}"
        super().__init__(message, details)


class CompressError(EdgeFnError):
    """Raised when writing the format tag or the compressed stream fails."""

    pass


class UploadError(EdgeFnError):
    """Raised when streaming the deploy request fails.

    Covers both producer side failures (encoding, reading a source file) and
    non-2xx responses from the deploy endpoint.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message, details)


DeployError = UploadError
