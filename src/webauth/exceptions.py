"""Exception hierarchy for webauth."""


class WebAuthError(Exception):
    """Base exception for all webauth errors."""


class ConfigurationError(WebAuthError):
    """No redirect URL could be built from the configuration."""


class InvalidInvitationError(WebAuthError):
    """Invitation link is missing its organization or invitation value."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Invalid invitation URL: {url}")


class UserCancelledError(WebAuthError):
    """User or system cancelled the login before it completed."""

    def __init__(self, message: str = "User cancelled Web Authentication") -> None:
        super().__init__(message)


class AuthenticationError(WebAuthError):
    """Identity provider answered the redirect with an error."""

    def __init__(self, info: dict[str, str], status_code: int = 0) -> None:
        self.info = dict(info)
        self.status_code = status_code
        message = self.description or self.code
        super().__init__(f"Authentication failed: {message}")

    @classmethod
    def from_string(cls, raw: str, status_code: int = 200) -> "AuthenticationError":
        """Build an error from an unstructured payload such as a raw URL."""
        return cls(
            {"error": "a0.internal_error.plain", "error_description": raw},
            status_code=status_code,
        )

    @property
    def code(self) -> str:
        return self.info.get("error", "a0.internal_error.unknown")

    @property
    def description(self) -> str:
        return self.info.get("error_description", "")


class InvalidResponseError(WebAuthError):
    """Redirect is missing the fields the grant needs."""


class RandomGenerationError(WebAuthError):
    """Secure random source is unavailable."""


class TokenExchangeError(WebAuthError):
    """Exchanging the authorization code for credentials failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        info: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.info = info or {}
        super().__init__(message)


class IdTokenValidationError(WebAuthError):
    """ID token claims do not match the authorization request."""
