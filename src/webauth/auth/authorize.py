"""Authorize, logout and redirect URL construction."""

import logging
import sys
from collections.abc import Mapping
from urllib.parse import parse_qs, quote, urlencode, urljoin, urlsplit

from webauth.auth.telemetry import Telemetry
from webauth.exceptions import ConfigurationError, InvalidInvitationError

logger = logging.getLogger(__name__)

REQUIRED_SCOPE = "openid"
DEFAULT_SCOPE = "openid profile email"


def _encode_query(items: list[tuple[str, str]]) -> str:
    # RFC 3986 encoding keeps spaces as %20, so a bare "+" would be ambiguous
    return urlencode(items, quote_via=quote, safe="").replace("+", "%2B")


def _endpoint(base_url: str, path: str) -> str:
    return urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))


def ensure_openid_scope(scope: str) -> str:
    """Prepend ``openid`` to a space-delimited scope that lacks it."""
    if REQUIRED_SCOPE in scope.split():
        return scope
    return f"{REQUIRED_SCOPE} {scope}".strip()


def build_authorize_url(
    base_url: str,
    client_id: str,
    redirect_url: str,
    response_type: str,
    grant_defaults: Mapping[str, str],
    state: str | None = None,
    nonce: str | None = None,
    organization: str | None = None,
    invitation: str | None = None,
    max_age: int | None = None,
    user_parameters: Mapping[str, str] | None = None,
    scope: str = DEFAULT_SCOPE,
    telemetry: Telemetry | None = None,
) -> str:
    """Build the ``/authorize`` URL.

    Later entries override earlier ones: grant defaults, then the computed
    request values, then ``user_parameters``. The ``openid`` scope is enforced
    after all overlays and telemetry is appended last.

    Returns:
        Full authorization URL to open in the user-agent.
    """
    entries: dict[str, str] = dict(grant_defaults)
    computed = {
        "scope": scope,
        "client_id": client_id,
        "response_type": response_type,
        "redirect_uri": redirect_url,
        "state": state,
        "nonce": nonce,
        "organization": organization,
        "invitation": invitation,
        "max_age": str(max_age) if max_age is not None else None,
    }
    entries.update({k: v for k, v in computed.items() if v is not None})
    entries.update(user_parameters or {})

    if "scope" in entries:
        entries["scope"] = ensure_openid_scope(entries["scope"])

    items = list(entries.items())
    if telemetry is not None:
        items = telemetry.decorate(items)

    return f"{_endpoint(base_url, '/authorize')}?{_encode_query(items)}"


def build_logout_url(
    base_url: str,
    client_id: str,
    return_to: str,
    federated: bool = False,
    telemetry: Telemetry | None = None,
) -> str:
    """Build the ``/v2/logout`` URL, optionally with the ``federated`` flag."""
    items = [("returnTo", return_to), ("client_id", client_id)]
    if telemetry is not None:
        items = telemetry.decorate(items)
    query = _encode_query(items)
    prefix = "federated&" if federated else ""
    return f"{_endpoint(base_url, '/v2/logout')}?{prefix}{query}"


def parse_invitation_url(url: str) -> tuple[str, str]:
    """Extract the organization and invitation ids from an invitation link.

    Raises:
        InvalidInvitationError: If either value is missing.
    """
    try:
        query = parse_qs(urlsplit(url).query)
    except ValueError as e:
        raise InvalidInvitationError(url) from e

    organization = query.get("organization", [None])[0]
    invitation = query.get("invitation", [None])[0]
    if not organization or not invitation:
        raise InvalidInvitationError(url)
    return organization, invitation


def current_platform() -> str:
    """Platform segment used in derived redirect URLs."""
    if sys.platform == "darwin":
        return "macos"
    if sys.platform.startswith("win"):
        return "windows"
    return "linux"


def resolve_redirect_url(
    domain: str,
    app_identifier: str | None,
    universal_link: bool = False,
    platform: str | None = None,
) -> str:
    """Derive the redirect URL from the application identifier.

    Format: ``{scheme}://{host}/{platform}/{app_identifier}/callback`` where the
    scheme is ``https`` for universal links and the identifier otherwise.

    Raises:
        ConfigurationError: If there is no application identifier.
    """
    if not app_identifier:
        raise ConfigurationError(
            "Unable to build a redirect URL: set WEBAUTH_REDIRECT_URL or WEBAUTH_APP_IDENTIFIER"
        )
    parts = urlsplit(domain if "://" in domain else f"https://{domain}")
    if not parts.netloc:
        raise ConfigurationError(f"Invalid domain: {domain}")

    scheme = "https" if universal_link else app_identifier.lower()
    base_path = parts.path.rstrip("/")
    platform = platform or current_platform()
    return f"{scheme}://{parts.netloc}{base_path}/{platform}/{app_identifier}/callback"
