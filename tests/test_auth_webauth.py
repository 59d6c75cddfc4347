"""Tests for the WebAuth login facade."""

import asyncio
from urllib.parse import parse_qs, urlsplit

import pytest

from conftest import DOMAIN, REDIRECT_URL, BlockingExchanger, FakeExchanger
from webauth.auth.grants import ImplicitGrant, PKCEGrant
from webauth.auth.models import ResponseType, TransactionState
from webauth.auth.pkce import ChallengeGenerator
from webauth.auth.registry import TransactionRegistry
from webauth.auth.webauth import WebAuth, WebAuthConfig
from webauth.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidInvitationError,
    RandomGenerationError,
    TokenExchangeError,
    UserCancelledError,
)
from webauth.settings import Settings


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query, keep_blank_values=True).items()}


@pytest.fixture
def config() -> WebAuthConfig:
    return WebAuthConfig(client_id="CLIENT_ID", domain="samples.example.com", redirect_url=REDIRECT_URL)


@pytest.fixture
def registry() -> TransactionRegistry:
    return TransactionRegistry()


@pytest.fixture
def webauth(config, registry, user_agent, exchanger) -> WebAuth:
    return WebAuth(config, registry=registry, user_agent=user_agent, exchanger=exchanger)


class TestWebAuthConfig:
    """Test WebAuthConfig."""

    def test_domain_gets_scheme(self, config):
        assert config.domain == DOMAIN

    def test_is_frozen(self, config):
        with pytest.raises(Exception):
            config.client_id = "other"

    def test_from_settings(self):
        settings = Settings(_env_file=None, client_id="cid", domain="tenant.example.com", audience="api")
        config = WebAuthConfig.from_settings(settings, scope="read")
        assert config.client_id == "cid"
        assert config.domain == "https://tenant.example.com"
        assert config.audience == "api"
        assert config.scope == "read"

    def test_from_settings_requires_client_and_domain(self):
        with pytest.raises(ConfigurationError):
            WebAuthConfig.from_settings(Settings(_env_file=None, client_id=None, domain=None))

    def test_user_parameters_merge(self):
        config = WebAuthConfig(
            client_id="c",
            domain="d.example.com",
            connection="github",
            parameters={"connection": "google", "prompt": "login"},
        )
        assert config.user_parameters() == {"connection": "google", "prompt": "login"}


class TestWebAuthStart:
    """Test WebAuth.start."""

    def test_opens_authorize_url(self, webauth, user_agent, registry, callback, results):
        """Start registers a pending transaction and opens the authorize URL."""
        transaction = webauth.start(callback)

        assert transaction is not None
        assert transaction.status is TransactionState.PENDING
        assert registry.current is transaction
        assert results == []

        url, callback_url, ephemeral = user_agent.opened[0]
        assert url.startswith(f"{DOMAIN}/authorize?")
        assert callback_url == REDIRECT_URL
        assert ephemeral is False
        assert transaction.session is user_agent.sessions[0]

        query = _query(url)
        assert query["client_id"] == "CLIENT_ID"
        assert query["redirect_uri"] == REDIRECT_URL
        assert query["response_type"] == "code"
        assert query["state"] == transaction.state
        assert query["code_challenge"] == transaction.grant.pair.challenge
        assert "openid" in query["scope"].split()

    def test_verifier_is_not_in_url(self, webauth, user_agent, callback):
        transaction = webauth.start(callback)
        assert transaction.grant.verifier not in user_agent.opened[0][0]

    def test_custom_state(self, webauth, user_agent, callback):
        transaction = webauth.with_options(state="xyz").start(callback)
        assert transaction.state == "xyz"
        assert _query(user_agent.opened[0][0])["state"] == "xyz"

    def test_ephemeral_preference_is_signalled(self, webauth, user_agent, callback):
        webauth.with_options(ephemeral_session=True).start(callback)
        assert user_agent.opened[0][2] is True

    def test_implicit_grant(self, webauth, user_agent, callback):
        transaction = webauth.with_options(response_type=ResponseType.TOKEN).start(callback)
        assert isinstance(transaction.grant, ImplicitGrant)
        assert _query(user_agent.opened[0][0])["response_type"] == "token"

    def test_pkce_grant_carries_expectations(self, webauth, callback):
        transaction = webauth.with_options(nonce="n", max_age=60, organization="org_1").start(callback)
        assert isinstance(transaction.grant, PKCEGrant)
        expectations = transaction.grant.expectations
        assert expectations.issuer == f"{DOMAIN}/"
        assert expectations.nonce == "n"
        assert expectations.max_age == 60
        assert expectations.organization == "org_1"

    def test_invitation_url(self, webauth, user_agent, callback):
        url = "https://app.example.com/login?invitation=inv_1&organization=org_1"
        transaction = webauth.with_options(invitation_url=url).start(callback)

        query = _query(user_agent.opened[0][0])
        assert query["organization"] == "org_1"
        assert query["invitation"] == "inv_1"
        assert transaction.grant.expectations.organization == "org_1"

    def test_invalid_invitation_fails_synchronously(self, webauth, user_agent, registry, callback, results):
        transaction = webauth.with_options(invitation_url="https://app.example.com/login").start(callback)

        assert transaction is None
        assert isinstance(results[0].error, InvalidInvitationError)
        assert user_agent.opened == []
        assert registry.current is None

    def test_missing_redirect_fails_synchronously(self, webauth, user_agent, registry, callback, results):
        """No redirect URL means ConfigurationError before any transaction exists."""
        transaction = webauth.with_options(redirect_url=None).start(callback)

        assert transaction is None
        assert isinstance(results[0].error, ConfigurationError)
        assert user_agent.opened == []
        assert registry.current is None

    def test_derived_redirect_url(self, webauth, callback):
        transaction = webauth.with_options(redirect_url=None, app_identifier="com.example.app").start(callback)
        assert transaction.redirect_url.startswith("com.example.app://samples.example.com/")
        assert transaction.redirect_url.endswith("/com.example.app/callback")

    def test_random_failure_fails_synchronously(self, config, registry, user_agent, callback, results):
        def broken(_n: int) -> bytes:
            raise OSError("no entropy")

        webauth = WebAuth(
            config,
            registry=registry,
            user_agent=user_agent,
            exchanger=FakeExchanger(),
            challenge_generator=ChallengeGenerator(token_bytes=broken),
        )

        assert webauth.start(callback) is None
        assert isinstance(results[0].error, RandomGenerationError)
        assert registry.current is None

    def test_new_start_cancels_pending(self, webauth, registry, user_agent, callback, results):
        """Starting again cancels the previous pending login explicitly."""
        first = webauth.start(callback)
        second = webauth.start(callback)

        assert first.status is TransactionState.CANCELLED
        assert isinstance(results[0].error, UserCancelledError)
        assert user_agent.sessions[0].cancelled == 1
        assert registry.current is second


class TestWebAuthFlow:
    """End-to-end login through the registry."""

    @pytest.mark.asyncio
    async def test_code_flow(self, webauth, registry, exchanger, callback, results):
        """start → redirect → exchange → credentials, transaction removed."""
        transaction = webauth.with_options(state="xyz").start(callback)

        consumed = await webauth.resume("https://app/callback?code=ABC&state=xyz")

        assert consumed is True
        assert results[0].credentials.access_token == "exchanged"
        assert exchanger.calls[0]["code"] == "ABC"
        assert exchanger.calls[0]["code_verifier"] == transaction.grant.verifier
        assert registry.current is None

    @pytest.mark.asyncio
    async def test_error_redirect(self, webauth, registry, callback, results):
        webauth.with_options(state="xyz").start(callback)

        assert await webauth.resume("https://app/callback?error=access_denied&state=xyz") is True
        assert isinstance(results[0].error, AuthenticationError)
        assert registry.current is None

    @pytest.mark.asyncio
    async def test_cancel(self, webauth, registry, callback, results):
        webauth.start(callback)

        assert webauth.cancel() is True
        assert isinstance(results[0].error, UserCancelledError)
        assert await webauth.resume("https://app/callback?code=ABC") is False
        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_login_returns_credentials(self, webauth, registry):
        """login() resolves once the redirect is delivered."""
        webauth = webauth.with_options(state="xyz")
        task = asyncio.create_task(webauth.login(timeout=5))
        await asyncio.sleep(0)

        assert await registry.resume("https://app/callback?code=ABC&state=xyz") is True
        credentials = await task
        assert credentials.access_token == "exchanged"

    @pytest.mark.asyncio
    async def test_login_raises_error(self, webauth, registry):
        webauth = webauth.with_options(state="xyz")
        task = asyncio.create_task(webauth.login(timeout=5))
        await asyncio.sleep(0)

        await registry.resume("https://app/callback?error=access_denied&state=xyz")
        with pytest.raises(AuthenticationError):
            await task

    @pytest.mark.asyncio
    async def test_login_timeout_cancels(self, webauth, registry):
        with pytest.raises(UserCancelledError):
            await webauth.login(timeout=0.05)
        assert registry.current is None

    @pytest.mark.asyncio
    async def test_login_surfaces_unexpected_exchange_failure(self, config, registry, user_agent):
        webauth = WebAuth(
            config,
            registry=registry,
            user_agent=user_agent,
            exchanger=FakeExchanger(error=RuntimeError("boom")),
        ).with_options(state="xyz")
        task = asyncio.create_task(webauth.login(timeout=5))
        await asyncio.sleep(0)

        assert await registry.resume("https://app/callback?code=ABC&state=xyz") is True
        with pytest.raises(TokenExchangeError) as exc_info:
            await task
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_login_timeout_during_exchange(self, config, registry, user_agent):
        """A timeout after the redirect was consumed fails instead of waiting on the exchange."""
        exchanger = BlockingExchanger()
        webauth = WebAuth(config, registry=registry, user_agent=user_agent, exchanger=exchanger)
        webauth = webauth.with_options(state="xyz")
        task = asyncio.create_task(webauth.login(timeout=0.2))
        await asyncio.sleep(0)

        resume = asyncio.create_task(registry.resume("https://app/callback?code=ABC&state=xyz"))
        await exchanger.started.wait()

        with pytest.raises(TokenExchangeError):
            await asyncio.wait_for(task, 5)

        exchanger.release.set()
        assert await resume is True

    @pytest.mark.asyncio
    async def test_login_configuration_error(self, webauth):
        with pytest.raises(ConfigurationError):
            await webauth.with_options(redirect_url=None).login(timeout=1)


class TestWebAuthLogout:
    """Test clear_session and logout."""

    @pytest.mark.asyncio
    async def test_logout_flow(self, webauth, user_agent, registry):
        task = asyncio.create_task(webauth.logout(federated=True, timeout=5))
        await asyncio.sleep(0)

        url = user_agent.opened[0][0]
        assert url.startswith(f"{DOMAIN}/v2/logout?federated&")
        assert _query(url)["returnTo"] == REDIRECT_URL

        assert await registry.resume(REDIRECT_URL) is True
        assert await task is True

    def test_clear_session_without_redirect(self, webauth, user_agent):
        outcomes = []
        assert webauth.with_options(redirect_url=None).clear_session(outcomes.append) is None
        assert outcomes == [False]
        assert user_agent.opened == []

    @pytest.mark.asyncio
    async def test_logout_timeout_reports_false(self, webauth):
        assert await webauth.logout(timeout=0.05) is False
