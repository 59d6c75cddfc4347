"""In-flight login and logout transactions."""

import logging
import secrets
from collections.abc import Callable
from urllib.parse import parse_qsl, urlsplit

from webauth.auth.grants import AuthorizationGrant
from webauth.auth.models import LoginCallback, LoginResult, LogoutCallback, TransactionState
from webauth.auth.user_agent import UserAgentSession
from webauth.exceptions import AuthenticationError, UserCancelledError

logger = logging.getLogger(__name__)

FinishHook = Callable[["BaseTransaction"], None]


def parse_redirect_values(url: str) -> dict[str, str]:
    """Collect key/value pairs from a redirect URL's query and fragment.

    Fragment values win over query values with the same key.

    Raises:
        ValueError: If the URL cannot be split into components.
    """
    parts = urlsplit(url)
    values = dict(parse_qsl(parts.query, keep_blank_values=True))
    values.update(parse_qsl(parts.fragment, keep_blank_values=True))
    return values


def matches_redirect(url: str, redirect_url: str) -> bool:
    """Case-insensitive prefix match against the expected redirect URL."""
    return url.lower().startswith(redirect_url.lower())


class BaseTransaction:
    """Shared lifecycle for transactions tracked by a registry."""

    def __init__(self, redirect_url: str, session: UserAgentSession | None = None):
        self.redirect_url = redirect_url
        self.session = session
        self.status = TransactionState.PENDING
        self._on_finish: FinishHook | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is TransactionState.PENDING

    @property
    def expects_fragment(self) -> bool:
        """Whether the redirect carries its values in the URL fragment."""
        return False

    def bind(self, on_finish: FinishHook | None) -> None:
        """Register the hook run once the transaction reaches a terminal state."""
        self._on_finish = on_finish

    def _finish(self, status: TransactionState) -> None:
        self.status = status
        if self.session is not None:
            self.session.cancel()
            self.session = None
        hook, self._on_finish = self._on_finish, None
        if hook is not None:
            hook(self)

    async def resume(self, url: str) -> bool:
        raise NotImplementedError

    def cancel(self) -> None:
        raise NotImplementedError


class Transaction(BaseTransaction):
    """One interactive login attempt, from authorize request to credentials."""

    def __init__(
        self,
        redirect_url: str,
        state: str | None,
        grant: AuthorizationGrant,
        callback: LoginCallback,
        session: UserAgentSession | None = None,
        ephemeral_session: bool = False,
    ):
        super().__init__(redirect_url, session)
        self.state = state
        self.grant = grant
        self.ephemeral_session = ephemeral_session
        self._callback = callback

    @property
    def expects_fragment(self) -> bool:
        return self.grant.fragment_response

    def _has_state(self, values: dict[str, str]) -> bool:
        if self.state is None:
            return True
        received = values.get("state")
        return received is not None and secrets.compare_digest(received, self.state)

    async def resume(self, url: str) -> bool:
        """Consume a redirect URL.

        Returns:
            True if the URL belonged to this transaction and the callback fired,
            False if it was ignored and the transaction is still pending.
        """
        if not self.is_pending:
            return False
        if not matches_redirect(url, self.redirect_url):
            logger.debug("Ignoring redirect that does not match %s", self.redirect_url)
            return False

        logger.debug("Resuming transaction with %s", url)
        try:
            values = self.grant.extract_values(parse_redirect_values(url))
        except ValueError:
            logger.warning("Received malformed redirect URL")
            self._finish(TransactionState.RESOLVED)
            self._callback(LoginResult.failure(AuthenticationError.from_string(url)))
            return True

        if not self._has_state(values):
            logger.debug("Ignoring redirect with mismatched state")
            return False

        # Terminal before any await so a concurrent cancel or resume is a no-op
        self._finish(TransactionState.RESOLVED)
        if "error" in values:
            self._callback(LoginResult.failure(AuthenticationError(info=values)))
        else:
            await self.grant.resolve_credentials(values, self._callback)
        return True

    def cancel(self) -> None:
        """Abort the login and report :class:`UserCancelledError`."""
        if not self.is_pending:
            return
        self._finish(TransactionState.CANCELLED)
        self._callback(LoginResult.failure(UserCancelledError()))


class LogoutTransaction(BaseTransaction):
    """Logout navigation, reported as a boolean."""

    def __init__(
        self,
        logout_url: str,
        redirect_url: str,
        callback: LogoutCallback,
        session: UserAgentSession | None = None,
    ):
        super().__init__(redirect_url, session)
        self.logout_url = logout_url
        self._callback = callback

    async def resume(self, url: str) -> bool:
        if not self.is_pending or not matches_redirect(url, self.redirect_url):
            return False
        self._finish(TransactionState.RESOLVED)
        self._callback(True)
        return True

    def cancel(self) -> None:
        if not self.is_pending:
            return
        self._finish(TransactionState.CANCELLED)
        self._callback(False)
