from microfeed.auth.credential_store import (
    CredentialStore,
    MemoryCredentialStore,
    SecureCredentialStore,
)
from microfeed.auth.models import (
    REMEMBER_TOKEN_KEY,
    TOKEN_KEY,
    CredentialRecord,
    LoginCredentials,
    Session,
    UserProfile,
)
from microfeed.auth.refresh import RefreshCoordinator, RefreshOutcome, RefreshState
from microfeed.auth.session import SessionState

__all__ = [
    "CredentialStore",
    "SecureCredentialStore",
    "MemoryCredentialStore",
    "CredentialRecord",
    "LoginCredentials",
    "Session",
    "UserProfile",
    "TOKEN_KEY",
    "REMEMBER_TOKEN_KEY",
    "SessionState",
    "RefreshCoordinator",
    "RefreshOutcome",
    "RefreshState",
]
