"""Web-based login through an external user-agent."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webauth.auth.authorize import (
    DEFAULT_SCOPE,
    build_authorize_url,
    build_logout_url,
    parse_invitation_url,
    resolve_redirect_url,
)
from webauth.auth.client import AuthenticationClient
from webauth.auth.grants import AuthorizationGrant, CodeExchanger, ImplicitGrant, PKCEGrant
from webauth.auth.models import (
    Credentials,
    IdTokenExpectations,
    LoginCallback,
    LoginResult,
    LogoutCallback,
    ResponseType,
)
from webauth.auth.pkce import ChallengeGenerator, generate_state
from webauth.auth.registry import TransactionRegistry
from webauth.auth.telemetry import Telemetry
from webauth.auth.transaction import BaseTransaction, LogoutTransaction, Transaction
from webauth.auth.user_agent import BrowserUserAgent, UserAgent
from webauth.exceptions import ConfigurationError, TokenExchangeError, UserCancelledError, WebAuthError
from webauth.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class WebAuthConfig(BaseModel):
    """Immutable login configuration. Derive variants with :meth:`WebAuth.with_options`."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    domain: str
    redirect_url: str | None = None
    app_identifier: str | None = None
    universal_link: bool = False
    response_type: ResponseType = ResponseType.CODE
    scope: str = DEFAULT_SCOPE
    connection: str | None = None
    connection_scope: str | None = None
    audience: str | None = None
    state: str | None = None
    nonce: str | None = None
    issuer: str | None = None
    leeway: int = 60 * 1000
    max_age: int | None = None
    organization: str | None = None
    invitation_url: str | None = None
    ephemeral_session: bool = False
    telemetry: bool = True
    parameters: dict[str, str] = Field(default_factory=dict)

    @field_validator("domain")
    @classmethod
    def _normalise_domain(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("domain must not be empty")
        return value if "://" in value else f"https://{value}"

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: Any) -> "WebAuthConfig":
        """Build a config from environment settings.

        Raises:
            ConfigurationError: If the client id or domain is not configured.
        """
        settings = settings or get_settings()
        values: dict[str, Any] = {
            "client_id": settings.client_id,
            "domain": settings.domain,
            "redirect_url": settings.redirect_url,
            "app_identifier": settings.app_identifier,
            "universal_link": settings.universal_link,
            "scope": settings.scope,
            "audience": settings.audience,
            "connection": settings.connection,
            "leeway": settings.leeway,
            "ephemeral_session": settings.ephemeral_session,
            "telemetry": settings.telemetry,
        }
        values.update(overrides)
        if not values.get("client_id") or not values.get("domain"):
            raise ConfigurationError("Set WEBAUTH_CLIENT_ID and WEBAUTH_DOMAIN to log in")
        return cls(**{k: v for k, v in values.items() if v is not None})

    def user_parameters(self) -> dict[str, str]:
        """Caller-supplied authorize parameters; these override computed defaults."""
        params = {
            "connection": self.connection,
            "connection_scope": self.connection_scope,
            "audience": self.audience,
        }
        merged = {k: v for k, v in params.items() if v is not None}
        merged.update(self.parameters)
        return merged


class WebAuth:
    """Runs login and logout through an external user-agent.

    Redirects captured by the platform are delivered through :meth:`resume`
    (or directly to the shared :class:`TransactionRegistry`).
    """

    def __init__(
        self,
        config: WebAuthConfig,
        registry: TransactionRegistry | None = None,
        user_agent: UserAgent | None = None,
        exchanger: CodeExchanger | None = None,
        challenge_generator: ChallengeGenerator | None = None,
        state_generator: Callable[[], str] = generate_state,
        telemetry: Telemetry | None = None,
    ):
        self.config = config
        self.registry = registry or TransactionRegistry()
        self.user_agent = user_agent or BrowserUserAgent()
        self.exchanger = exchanger or AuthenticationClient(config.client_id, config.domain)
        self.challenge_generator = challenge_generator or ChallengeGenerator()
        self.state_generator = state_generator
        self.telemetry = telemetry or Telemetry(enabled=config.telemetry)

    def with_options(self, **changes: Any) -> "WebAuth":
        """Return a WebAuth sharing collaborators but with an updated config."""
        config = WebAuthConfig.model_validate({**self.config.model_dump(), **changes})
        return WebAuth(
            config,
            registry=self.registry,
            user_agent=self.user_agent,
            exchanger=self.exchanger,
            challenge_generator=self.challenge_generator,
            state_generator=self.state_generator,
            telemetry=self.telemetry,
        )

    @property
    def redirect_url(self) -> str:
        """Redirect URL for this app.

        Raises:
            ConfigurationError: If no redirect URL is configured or derivable.
        """
        if self.config.redirect_url:
            return self.config.redirect_url
        return resolve_redirect_url(
            self.config.domain,
            self.config.app_identifier,
            universal_link=self.config.universal_link,
        )

    def _grant(self, redirect_url: str, organization: str | None) -> AuthorizationGrant:
        if self.config.response_type is ResponseType.TOKEN:
            return ImplicitGrant()
        expectations = IdTokenExpectations(
            issuer=self.config.issuer or f"{self.config.domain}/",
            leeway=self.config.leeway,
            nonce=self.config.nonce,
            max_age=self.config.max_age,
            organization=organization,
        )
        return PKCEGrant(
            exchanger=self.exchanger,
            redirect_url=redirect_url,
            expectations=expectations,
            generator=self.challenge_generator,
        )

    def _cancel_pending(self) -> None:
        previous = self.registry.current
        if previous is not None and previous.is_pending:
            logger.debug("Cancelling pending transaction before starting a new one")
            previous.cancel()

    def _open(self, transaction: BaseTransaction, url: str) -> None:
        self._cancel_pending()
        self.registry.store(transaction)
        logger.debug("Opening %s", url)
        session = self.user_agent.open(url, transaction.redirect_url, self.config.ephemeral_session)
        if transaction.is_pending:
            transaction.session = session
        elif session is not None:
            session.cancel()

    def authorize_url(
        self,
        redirect_url: str,
        grant: AuthorizationGrant,
        state: str | None,
        organization: str | None = None,
        invitation: str | None = None,
    ) -> str:
        return build_authorize_url(
            self.config.domain,
            client_id=self.config.client_id,
            redirect_url=redirect_url,
            response_type=self.config.response_type.value,
            grant_defaults=grant.default_parameters(),
            state=state,
            nonce=self.config.nonce,
            organization=organization,
            invitation=invitation,
            max_age=self.config.max_age,
            user_parameters=self.config.user_parameters(),
            scope=self.config.scope,
            telemetry=self.telemetry,
        )

    def prepare(self, callback: LoginCallback) -> tuple[Transaction, str]:
        """Build a pending transaction and its authorize URL without opening anything.

        Raises:
            ConfigurationError: If no redirect URL can be resolved.
            InvalidInvitationError: If the invitation URL is malformed.
            RandomGenerationError: If PKCE or state generation fails.
        """
        redirect_url = self.redirect_url
        organization, invitation = self.config.organization, None
        if self.config.invitation_url:
            organization, invitation = parse_invitation_url(self.config.invitation_url)

        grant = self._grant(redirect_url, organization)
        state = self.config.state or self.config.parameters.get("state") or self.state_generator()
        url = self.authorize_url(redirect_url, grant, state, organization, invitation)
        transaction = Transaction(
            redirect_url=redirect_url,
            state=state,
            grant=grant,
            callback=callback,
            ephemeral_session=self.config.ephemeral_session,
        )
        return transaction, url

    def start(self, callback: LoginCallback) -> Transaction | None:
        """Start a login and open the user-agent.

        Setup failures are reported to ``callback`` before any transaction exists.

        Returns:
            The pending transaction, or None if setup failed.
        """
        try:
            transaction, url = self.prepare(callback)
        except WebAuthError as e:
            logger.debug("Unable to start login: %s", e)
            callback(LoginResult.failure(e))
            return None
        self._open(transaction, url)
        return transaction

    async def resume(self, url: str) -> bool:
        """Deliver a redirect URL captured by the platform."""
        return await self.registry.resume(url)

    def cancel(self) -> bool:
        """Cancel the active login or logout."""
        return self.registry.cancel()

    async def login(self, timeout: float | None = None) -> Credentials:
        """Run a login and wait for its outcome.

        Args:
            timeout: Seconds to wait for the redirect; the login is cancelled after.

        Returns:
            Credentials from the authorization server.

        Raises:
            TokenExchangeError: If the timeout passes while the code exchange is in flight.
            WebAuthError: Whatever error the login reported.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[LoginResult] = loop.create_future()

        transaction = self.start(_deliver_to(loop, future))
        try:
            result = await asyncio.wait_for(asyncio.shield(future), timeout)
        except TimeoutError:
            logger.info("Login timed out after %ss", timeout)
            if transaction is not None:
                transaction.cancel()
            if not future.done():
                # Redirect already consumed, the exchange has not answered yet
                raise TokenExchangeError(
                    f"Timed out after {timeout}s waiting for the token exchange"
                ) from None
            result = future.result()
        except asyncio.CancelledError:
            if transaction is not None:
                transaction.cancel()
            raise
        return result.unwrap()

    def clear_session(self, callback: LogoutCallback, federated: bool = False) -> LogoutTransaction | None:
        """Open the logout page; ``callback`` receives True once the redirect comes back."""
        try:
            redirect_url = self.redirect_url
        except ConfigurationError as e:
            logger.debug("Unable to log out: %s", e)
            callback(False)
            return None

        logout_url = build_logout_url(
            self.config.domain,
            client_id=self.config.client_id,
            return_to=redirect_url,
            federated=federated,
            telemetry=self.telemetry,
        )
        transaction = LogoutTransaction(logout_url, redirect_url, callback)
        self._open(transaction, logout_url)
        return transaction

    async def logout(self, federated: bool = False, timeout: float | None = None) -> bool:
        """Run the logout flow and wait for the boolean outcome."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[bool] = loop.create_future()

        transaction = self.clear_session(_deliver_to(loop, future), federated)
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        except TimeoutError:
            if transaction is not None:
                transaction.cancel()
            return future.result() if future.done() else False


def _deliver_to(loop: asyncio.AbstractEventLoop, future: asyncio.Future) -> Callable[[Any], None]:
    """Callback that resolves ``future`` once, from the loop thread or any other."""

    def _set(value: Any) -> None:
        if not future.done():
            future.set_result(value)

    def _callback(value: Any) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            _set(value)
        else:
            loop.call_soon_threadsafe(_set, value)

    return _callback


def login_error_message(error: WebAuthError) -> str:
    """Short, user-facing description of a login failure."""
    if isinstance(error, UserCancelledError):
        return "Login was cancelled"
    return str(error)
