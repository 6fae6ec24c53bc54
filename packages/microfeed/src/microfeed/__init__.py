"""
microfeed - session and request-authorization client for the microfeed API.

Persists and rehydrates the user's session, authorizes every request and
recovers from expired access tokens by refreshing them transparently.
"""

from microfeed.api import ApiClient
from microfeed.auth import (
    CredentialStore,
    LoginCredentials,
    MemoryCredentialStore,
    SecureCredentialStore,
    Session,
    SessionState,
    UserProfile,
)
from microfeed.client import MicrofeedClient, create_client
from microfeed.config import ClientSettings
from microfeed.exceptions import AuthorizationError, StorageUnavailable, ValidationError
from shared_lib.baseclient.exceptions import (
    AuthenticationError,
    ClientError,
    ConfigurationError,
    HTTPError,
    TransientNetworkError,
)

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "MicrofeedClient",
    "create_client",
    "ClientSettings",
    "ApiClient",
    # Session
    "SessionState",
    "Session",
    "UserProfile",
    "LoginCredentials",
    # Storage
    "CredentialStore",
    "SecureCredentialStore",
    "MemoryCredentialStore",
    # Errors
    "ClientError",
    "HTTPError",
    "TransientNetworkError",
    "AuthenticationError",
    "ConfigurationError",
    "AuthorizationError",
    "ValidationError",
    "StorageUnavailable",
]
