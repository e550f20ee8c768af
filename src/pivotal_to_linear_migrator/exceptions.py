"""
Custom exception classes for the Pivotal Tracker to Linear migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class ConfigurationError(MigrationError):
    """Raised when required configuration is missing or invalid."""


class APIError(MigrationError):
    """A non-success HTTP response from one of the two systems."""

    status_code: int
    body: str

    def __init__(self, status_code: int, body: str, message: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"API request failed: {status_code}, Body: {body}")


class PivotalAPIError(APIError):
    """Raised when the Pivotal Tracker REST API returns a non-success status."""


class LinearAPIError(APIError):
    """Raised when the Linear GraphQL API returns an error that is not a rate limit."""
