"""Token endpoint client for the authorization code exchange."""

import logging

import httpx
from pydantic import ValidationError

from webauth.auth.id_token import validate_claims
from webauth.auth.models import Credentials, IdTokenExpectations
from webauth.exceptions import TokenExchangeError

logger = logging.getLogger(__name__)


class AuthenticationClient:
    """Exchanges authorization codes at ``{domain}/oauth/token``."""

    def __init__(self, client_id: str, domain: str, timeout: float = 30.0):
        self.client_id = client_id
        self.domain = domain.rstrip("/")
        self.timeout = timeout

    @property
    def token_url(self) -> str:
        return f"{self.domain}/oauth/token"

    async def exchange(
        self,
        code: str,
        verifier: str,
        redirect_url: str,
        expectations: IdTokenExpectations | None = None,
    ) -> Credentials:
        """Exchange an authorization code for credentials.

        Args:
            code: Authorization code from the redirect.
            verifier: PKCE code verifier matching the challenge sent earlier.
            redirect_url: Redirect URI used in the authorize request.
            expectations: When given, ID token claims are checked against it.

        Returns:
            Credentials issued by the token endpoint.

        Raises:
            TokenExchangeError: If the request fails or the response is malformed.
            IdTokenValidationError: If ID token claims don't match.
        """
        logger.debug("Exchanging authorization code at %s", self.token_url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.token_url,
                    data={
                        "grant_type": "authorization_code",
                        "client_id": self.client_id,
                        "code": code,
                        "code_verifier": verifier,
                        "redirect_uri": redirect_url,
                    },
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            info = _error_info(e.response)
            raise TokenExchangeError(
                f"Code exchange failed: {info.get('error_description') or info.get('error') or e}",
                status_code=e.response.status_code,
                info=info,
            ) from e
        except httpx.RequestError as e:
            raise TokenExchangeError(f"Code exchange request failed: {e}") from e
        except ValueError as e:
            raise TokenExchangeError(f"Token endpoint returned invalid JSON: {e}") from e

        try:
            credentials = Credentials.model_validate(data)
        except ValidationError as e:
            raise TokenExchangeError(f"Token endpoint returned malformed credentials: {e}") from e
        if not credentials.access_token:
            raise TokenExchangeError("Token endpoint response has no access_token")

        if expectations is not None and credentials.id_token:
            validate_claims(credentials.id_token, self.client_id, expectations)

        return credentials


def _error_info(response: httpx.Response) -> dict[str, str]:
    try:
        body = response.json()
    except ValueError:
        return {"error": "unknown_error", "error_description": response.text}
    if not isinstance(body, dict):
        return {"error": "unknown_error", "error_description": response.text}
    return {k: str(v) for k, v in body.items()}
