"""
Custom exceptions for the base HTTP client.

This module provides specialized exceptions for better error handling
when building clients that inherit from BaseClient.
"""


class ClientError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, *args, **kwargs):
        super().__init__(message, *args)
        self.message = message
        self.details = kwargs


class HTTPError(ClientError):
    """Raised when an HTTP request fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict | None = None,
    ):
        super().__init__(message, status_code=status_code, response_body=response_body)
        self.status_code = status_code
        self.response_body = response_body


class TransientNetworkError(HTTPError):
    """
    Raised when a request keeps failing with a retryable condition.

    Covers connection errors, timeouts and the retryable status codes once
    the retry budget of the client is exhausted. `status_code` is None when
    the server never answered.
    """

    pass


class AuthenticationError(ClientError):
    """Raised when authentication fails."""

    pass


class ConfigurationError(ClientError):
    """Raised when there's an issue with client configuration."""

    pass
