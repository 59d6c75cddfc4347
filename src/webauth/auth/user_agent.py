"""External user-agent used to show the login page."""

import logging
import webbrowser
from typing import Protocol

logger = logging.getLogger(__name__)


class UserAgentSession(Protocol):
    """Handle on an open user-agent session."""

    def cancel(self) -> None: ...


class UserAgent(Protocol):
    """Opens a URL in a user-agent that eventually redirects to ``callback_url``.

    ``ephemeral`` is only a preference; user-agents that cannot honour it ignore it.
    """

    def open(self, url: str, callback_url: str, ephemeral: bool = False) -> UserAgentSession | None: ...


class BrowserSession:
    """Session opened in the system browser. The browser tab cannot be closed from here."""

    def __init__(self, url: str, opened: bool):
        self.url = url
        self.opened = opened
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        logger.debug("Browser session for %s released", self.url)


class BrowserUserAgent:
    """Opens the login page with the :mod:`webbrowser` module."""

    def open(self, url: str, callback_url: str, ephemeral: bool = False) -> BrowserSession:
        if ephemeral:
            logger.debug("System browser does not support ephemeral sessions, ignoring")
        opened = webbrowser.open(url)
        if not opened:
            logger.warning("Could not open a browser. Visit this URL to continue: %s", url)
        return BrowserSession(url, opened)
