"""Authentication data models."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from webauth.exceptions import InvalidResponseError, WebAuthError


class ResponseType(StrEnum):
    """OAuth2 response types supported by the login flow."""

    CODE = "code"
    TOKEN = "token"


class TransactionState(StrEnum):
    """Lifecycle of an in-flight login."""

    PENDING = "pending"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class Credentials(BaseModel):
    """Credentials issued by the authorization server.

    Unknown fields returned by the server are kept as extras.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str | None = None
    token_type: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None


class IdTokenExpectations(BaseModel):
    """Values the ID token must agree with, threaded through to the code exchange."""

    model_config = ConfigDict(frozen=True)

    issuer: str
    leeway: int = 60 * 1000
    nonce: str | None = None
    max_age: int | None = None
    organization: str | None = None


@dataclass(frozen=True)
class LoginResult:
    """Outcome delivered to a transaction callback."""

    credentials: Credentials | None = None
    error: WebAuthError | None = None

    @classmethod
    def success(cls, credentials: Credentials) -> "LoginResult":
        return cls(credentials=credentials)

    @classmethod
    def failure(cls, error: WebAuthError) -> "LoginResult":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None and self.credentials is not None

    def unwrap(self) -> Credentials:
        """Return the credentials or raise the stored error."""
        if self.error is not None:
            raise self.error
        if self.credentials is None:
            raise InvalidResponseError("Login finished without credentials")
        return self.credentials


LoginCallback = Callable[[LoginResult], None]
LogoutCallback = Callable[[bool], None]
