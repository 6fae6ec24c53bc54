"""
Base HTTP client for building API clients.

This package provides a flexible and extensible base class for creating
async HTTP clients with built-in transient-failure retries, a fixed
request timeout and structured error handling.
"""

from .client import BaseClient as Client, RETRY_STATUS_CODES
from .exceptions import (
    AuthenticationError,
    ClientError,
    ConfigurationError,
    HTTPError,
    TransientNetworkError,
)

__version__ = "0.1.0"
__all__ = [
    "Client",
    "RETRY_STATUS_CODES",
    "ClientError",
    "HTTPError",
    "TransientNetworkError",
    "AuthenticationError",
    "ConfigurationError",
]
