"""OAuth2 grant handlers: implicit and authorization code with PKCE."""

import logging
from abc import ABC, abstractmethod
from typing import Protocol

from pydantic import ValidationError

from webauth.auth.models import Credentials, IdTokenExpectations, LoginCallback, LoginResult
from webauth.auth.pkce import ChallengeGenerator, PKCEPair
from webauth.exceptions import InvalidResponseError, TokenExchangeError, WebAuthError

logger = logging.getLogger(__name__)


class CodeExchanger(Protocol):
    """Exchanges an authorization code for credentials."""

    async def exchange(
        self,
        code: str,
        verifier: str,
        redirect_url: str,
        expectations: IdTokenExpectations | None = None,
    ) -> Credentials: ...


class AuthorizationGrant(ABC):
    """Turns redirect values into credentials for one OAuth2 grant type."""

    # Whether the authorization server returns its response in the URL fragment
    fragment_response = False

    @abstractmethod
    def default_parameters(self) -> dict[str, str]:
        """Parameters this grant adds to the authorize request."""

    def extract_values(self, values: dict[str, str]) -> dict[str, str]:
        """Normalise values parsed from the redirect query and fragment."""
        return values

    @abstractmethod
    async def credentials(self, values: dict[str, str]) -> Credentials:
        """Build credentials from redirect values.

        Raises:
            WebAuthError: If the values are incomplete or the exchange fails.
        """

    async def resolve_credentials(self, values: dict[str, str], callback: LoginCallback) -> None:
        """Resolve credentials and report the outcome to ``callback`` exactly once."""
        try:
            result = LoginResult.success(await self.credentials(values))
        except WebAuthError as e:
            logger.debug("%s failed to resolve credentials: %s", type(self).__name__, e)
            result = LoginResult.failure(e)
        except Exception as e:
            logger.exception("%s raised while resolving credentials", type(self).__name__)
            error = TokenExchangeError(f"Unable to resolve credentials: {e}")
            error.__cause__ = e
            result = LoginResult.failure(error)
        callback(result)


class ImplicitGrant(AuthorizationGrant):
    """Implicit grant: the redirect already carries the access token."""

    fragment_response = True

    def default_parameters(self) -> dict[str, str]:
        return {"response_type": "token"}

    async def credentials(self, values: dict[str, str]) -> Credentials:
        if not values.get("access_token"):
            raise InvalidResponseError("No access_token found in response")
        try:
            return Credentials.model_validate(values)
        except ValidationError as e:
            raise InvalidResponseError(f"Malformed implicit grant response: {e}") from e


class PKCEGrant(AuthorizationGrant):
    """Authorization code grant protected by a PKCE verifier."""

    def __init__(
        self,
        exchanger: CodeExchanger,
        redirect_url: str,
        expectations: IdTokenExpectations,
        pair: PKCEPair | None = None,
        generator: ChallengeGenerator | None = None,
    ) -> None:
        """Initialize the grant.

        Args:
            exchanger: Collaborator that performs the token request.
            redirect_url: Redirect URI sent with the authorize request.
            expectations: ID token expectations forwarded to the exchanger.
            pair: Fixed verifier/challenge; generated when omitted.
            generator: Generator used when no pair is given.

        Raises:
            RandomGenerationError: If a pair must be generated and randomness fails.
        """
        self.exchanger = exchanger
        self.redirect_url = redirect_url
        self.expectations = expectations
        self.pair = pair or (generator or ChallengeGenerator()).generate()

    @property
    def verifier(self) -> str:
        return self.pair.verifier

    def default_parameters(self) -> dict[str, str]:
        return {
            "response_type": "code",
            "code_challenge": self.pair.challenge,
            "code_challenge_method": self.pair.method,
        }

    async def credentials(self, values: dict[str, str]) -> Credentials:
        code = values.get("code")
        if not code:
            raise InvalidResponseError("No authorization code found in response")
        return await self.exchanger.exchange(
            code=code,
            verifier=self.pair.verifier,
            redirect_url=self.redirect_url,
            expectations=self.expectations,
        )
