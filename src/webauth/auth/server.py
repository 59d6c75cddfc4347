"""Loopback HTTP server that delivers browser redirects to the transaction registry."""

import html
import logging
from importlib.resources import files

from aiohttp import web

from webauth.auth.registry import TransactionRegistry

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"


def get_success_page() -> str:
    """Load the success HTML page."""
    return files("webauth.auth.pages").joinpath("success.html").read_text()


def get_relay_page() -> str:
    """Load the page that forwards a URL fragment back to the server as a query string."""
    return files("webauth.auth.pages").joinpath("relay.html").read_text()


def _get_error_page(message: str) -> str:
    """Generate error HTML page."""
    return f"""<!DOCTYPE html>
<html>
<head><title>Authentication Error</title></head>
<body style="background:#0d1117;color:#f85149;font-family:monospace;padding:2rem;">
<h1>Authentication Error</h1>
<p>{html.escape(message)}</p>
</body>
</html>"""


class CallbackServer:
    """Temporary HTTP server that receives login and logout redirects."""

    def __init__(self, registry: TransactionRegistry, port: int = 0):
        """Initialize callback server.

        Args:
            registry: Registry holding the transaction waiting for the redirect.
            port: Port to bind to. 0 = random available port.
        """
        self.registry = registry
        self.host = "127.0.0.1"
        self._requested_port = port
        self.port = 0
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def callback_url(self) -> str:
        """Get the callback URL for this server."""
        return f"http://{self.host}:{self.port}{CALLBACK_PATH}"

    async def start(self) -> None:
        """Start the callback server."""
        self._app = web.Application()
        self._app.router.add_get(CALLBACK_PATH, self._handle_callback)

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self._requested_port)
        await self._site.start()

        # Get actual port if we requested 0
        assert self._site._server is not None
        sockets = self._site._server.sockets
        if sockets:
            self.port = sockets[0].getsockname()[1]

        logger.debug("Callback server started on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop the callback server."""
        if self._runner:
            await self._runner.cleanup()
        self._app = None
        self._runner = None
        self._site = None

    async def __aenter__(self) -> "CallbackServer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _handle_callback(self, request: web.Request) -> web.Response:
        """Hand the redirect to the active transaction."""
        query = request.rel_url.raw_query_string
        current = self.registry.current
        if not query and current is not None and current.is_pending and current.expects_fragment:
            # Browsers never send the fragment, so bounce it back as a query string
            logger.debug("Serving fragment relay page")
            return web.Response(text=get_relay_page(), content_type="text/html")

        url = f"{self.callback_url}?{query}" if query else self.callback_url
        consumed = await self.registry.resume(url)

        if not consumed:
            message = "No login in progress for this redirect"
            logger.error(message)
            return web.Response(
                text=_get_error_page(message),
                content_type="text/html",
                status=400,
            )

        if "error" in request.query:
            description = request.query.get("error_description") or request.query["error"]
            return web.Response(
                text=_get_error_page(f"OAuth error: {description}"),
                content_type="text/html",
            )

        return web.Response(
            text=get_success_page(),
            content_type="text/html",
        )
