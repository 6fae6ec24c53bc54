"""
Session data model.

`UserProfile` and the response payloads are pydantic models parsed from
the server's JSON. `Session` and `CredentialRecord` are plain frozen
dataclasses owned by the client: they are replaced, never mutated.
"""

from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import ConfigDict, field_validator

from shared_lib.pydantic import APIBaseModel

# Fixed keys in the credential store
TOKEN_KEY = "token"
REMEMBER_TOKEN_KEY = "remember_token"


class UserProfile(APIBaseModel):
    """
    Server supplied identity projection.

    Attributes:
        id: User id (the server sends integers, kept as a string)
        name: Display name
        email: Account email
        gravatar_id: Avatar reference
        admin: Administrator flag
        activated: Whether the account email has been confirmed
        following: Number of followed users, when the endpoint includes it
        followers: Number of followers, when the endpoint includes it
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str
    email: str
    gravatar_id: str | None = None
    admin: bool = False
    activated: bool = False
    following: int | None = None
    followers: int | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)


class LoginCredentials(APIBaseModel):
    email: str
    password: str
    remember_me: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Request body for the login endpoint."""
        return {"session": self.model_dump()}


class TokenPayload(APIBaseModel):
    token: str
    expires: str | None = None
    remember_token: str | None = None


class LoginTokens(APIBaseModel):
    access: TokenPayload | None = None
    refresh: TokenPayload | None = None


class LoginResponse(APIBaseModel):
    user: UserProfile | None = None
    tokens: LoginTokens | None = None


class SessionResponse(APIBaseModel):
    user: UserProfile | None = None


class RefreshTokens(APIBaseModel):
    access: TokenPayload


class RefreshResponse(APIBaseModel):
    tokens: RefreshTokens


@dataclass(frozen=True)
class CredentialRecord:
    """
    Durable access/refresh pair.

    Stored in the credential store under TOKEN_KEY and REMEMBER_TOKEN_KEY.
    Either token may be absent.
    """

    access_token: str | None = None
    refresh_token: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            TOKEN_KEY: self.access_token,
            REMEMBER_TOKEN_KEY: self.refresh_token,
        }

    def __repr__(self) -> str:
        # Never leak token values into logs or tracebacks
        return (
            f"CredentialRecord(access_token={_preview(self.access_token)}, "
            f"refresh_token={_preview(self.refresh_token)})"
        )


@dataclass(frozen=True)
class Session:
    """
    # Session Snapshot

    The client's belief about whether it is authenticated and as whom.
    A new snapshot is produced for every transition; observers receive
    the snapshot, never a live object.

    ## Attributes:
    - `user`: Profile of the signed-in user, None when signed out
    - `authenticated`: True iff an access token is held and not invalidated
    - `initialized`: True once the first rehydration attempt finished;
      never goes back to False
    - `access_token` / `refresh_token`: In-memory credential pair
    - `loading`: A login or rehydration is in flight
    - `error`: Last login failure, until `clear_error()`
    - `expired`: The last logout was forced by an authorization failure
      ("please sign in again")
    """

    user: UserProfile | None = None
    authenticated: bool = False
    initialized: bool = False
    access_token: str | None = None
    refresh_token: str | None = None
    loading: bool = False
    error: Exception | None = field(default=None, compare=False)
    expired: bool = False

    @property
    def credentials(self) -> CredentialRecord:
        return CredentialRecord(self.access_token, self.refresh_token)

    def signed_out(self, expired: bool = False) -> "Session":
        """Unauthenticated shape, keeping `initialized`."""
        return Session(initialized=self.initialized, expired=expired)

    def evolve(self, **changes: Any) -> "Session":
        return replace(self, **changes)

    def __repr__(self) -> str:
        return (
            f"Session(user={self.user.id if self.user else None}, "
            f"authenticated={self.authenticated}, initialized={self.initialized}, "
            f"access_token={_preview(self.access_token)}, "
            f"refresh_token={_preview(self.refresh_token)}, loading={self.loading}, "
            f"expired={self.expired})"
        )


def _preview(token: str | None) -> str | None:
    if token is None:
        return None
    return f"{token[:6]}..."
