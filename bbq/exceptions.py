"""Custom exceptions for the bbq toolkit."""

from __future__ import annotations

from typing import Any


class BBQError(Exception):
    """Base exception for all bbq errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(BBQError):
    """Raised when there's a configuration problem."""
    pass


class ServerNotRegisteredError(ConfigurationError):
    """Raised when a resource names a server that was never registered."""

    def __init__(self, server: str):
        """Initialize the error.

        Args:
            server: Name of the missing server
        """
        super().__init__(f"No server {server!r} registered")
        self.server = server


# =============================================================================
# Resource Errors
# =============================================================================


class ResourceError(BBQError):
    """Base exception for remote resource errors."""

    def __init__(self, message: str, resource: str | None = None):
        """Initialize resource error.

        Args:
            message: Error message
            resource: Path of the resource involved (e.g., 'workspaces')
        """
        super().__init__(message)
        self.resource = resource


class ApiError(ResourceError):
    """Raised when a request fails at the transport or protocol level."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        resource: str | None = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code if available
            body: Snippet of the response body if available
            resource: Path of the resource involved
        """
        super().__init__(message, resource=resource)
        self.status_code = status_code
        self.body = body


# =============================================================================
# Cache Errors
# =============================================================================


class CacheError(BBQError):
    """Base exception for on-disk cache errors."""
    pass


class CacheCorruptionError(CacheError):
    """Raised when a stored blob cannot be decoded by its handler."""

    def __init__(self, message: str, blob: Any = None):
        super().__init__(message)
        self.blob = blob

