"""Shared test fixtures for auth tests."""

import asyncio

import pytest

from webauth.auth.models import Credentials, IdTokenExpectations, LoginResult
from webauth.auth.pkce import PKCEPair, challenge_for

REDIRECT_URL = "https://app/callback"
DOMAIN = "https://samples.example.com"


class FakeExchanger:
    """Code exchanger that records calls and returns a fixed outcome."""

    def __init__(self, credentials: Credentials | None = None, error: Exception | None = None):
        self.credentials = credentials or Credentials(access_token="exchanged", token_type="Bearer")
        self.error = error
        self.calls: list[dict] = []

    async def exchange(self, code, verifier, redirect_url, expectations=None):
        self.calls.append(
            {
                "code": code,
                "code_verifier": verifier,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_url,
                "expectations": expectations,
            }
        )
        if self.error is not None:
            raise self.error
        return self.credentials


class BlockingExchanger:
    """Code exchanger that waits until released, for exchanges still in flight."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def exchange(self, code, verifier, redirect_url, expectations=None):
        self.started.set()
        await self.release.wait()
        return Credentials(access_token="late")


class FakeSession:
    """User-agent session that records cancellation."""

    def __init__(self):
        self.cancelled = 0

    def cancel(self) -> None:
        self.cancelled += 1


class FakeUserAgent:
    """User-agent that records opened URLs instead of launching a browser."""

    def __init__(self):
        self.opened: list[tuple[str, str, bool]] = []
        self.sessions: list[FakeSession] = []

    def open(self, url, callback_url, ephemeral=False):
        self.opened.append((url, callback_url, ephemeral))
        session = FakeSession()
        self.sessions.append(session)
        return session


@pytest.fixture
def pkce_pair() -> PKCEPair:
    """Fixed verifier/challenge pair."""
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    return PKCEPair(verifier=verifier, challenge=challenge_for(verifier))


@pytest.fixture
def expectations() -> IdTokenExpectations:
    return IdTokenExpectations(issuer=f"{DOMAIN}/")


@pytest.fixture
def exchanger() -> FakeExchanger:
    return FakeExchanger()


@pytest.fixture
def user_agent() -> FakeUserAgent:
    return FakeUserAgent()


@pytest.fixture
def results() -> list[LoginResult]:
    """Collector for callback results."""
    return []


@pytest.fixture
def callback(results):
    """Callback that appends every result it receives."""

    def _callback(result) -> None:
        results.append(result)

    return _callback
