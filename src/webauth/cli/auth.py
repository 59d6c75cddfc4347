"""CLI commands for authentication."""

import asyncio
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from webauth.auth.client import AuthenticationClient
from webauth.auth.models import Credentials, ResponseType
from webauth.auth.registry import TransactionRegistry
from webauth.auth.server import CallbackServer
from webauth.auth.webauth import WebAuth, WebAuthConfig, login_error_message
from webauth.exceptions import WebAuthError
from webauth.settings import get_settings

auth_app = typer.Typer(name="auth", help="Log in and out.")
console = Console()

_SECRET_FIELDS = {"access_token", "id_token", "refresh_token"}


def _mask(value: str) -> str:
    return value if len(value) <= 12 else f"{value[:8]}…{value[-4:]}"


def _print_credentials(credentials: Credentials, show_tokens: bool = False) -> None:
    table = Table(title="Credentials")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    for field, value in credentials.model_dump(exclude_none=True).items():
        text = str(value)
        if field in _SECRET_FIELDS and not show_tokens:
            text = _mask(text)
        table.add_row(field, text)

    console.print(table)


def _overrides(
    scope: str | None,
    audience: str | None,
    connection: str | None,
    organization: str | None,
    invitation_url: str | None,
    implicit: bool,
) -> dict[str, Any]:
    values: dict[str, Any] = {
        "scope": scope,
        "audience": audience,
        "connection": connection,
        "organization": organization,
        "invitation_url": invitation_url,
    }
    if implicit:
        values["response_type"] = ResponseType.TOKEN
    return {k: v for k, v in values.items() if v is not None}


ScopeOption = Annotated[str | None, typer.Option("--scope", help="Space-separated scopes.")]
AudienceOption = Annotated[str | None, typer.Option("--audience", help="API audience.")]
ConnectionOption = Annotated[str | None, typer.Option("--connection", help="Identity provider connection.")]
OrganizationOption = Annotated[str | None, typer.Option("--organization", help="Organization id.")]
InvitationOption = Annotated[
    str | None, typer.Option("--invitation-url", help="Organization invitation link.")
]


@auth_app.command()
def status() -> None:
    """Show the login configuration."""
    settings = get_settings()

    table = Table(title="Login Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="yellow")

    table.add_row("Client ID", settings.client_id or "Not configured")
    table.add_row("Domain", settings.domain or "Not configured")
    table.add_row("Redirect URL", settings.redirect_url or "-")
    table.add_row("App identifier", settings.app_identifier or "-")
    table.add_row("Scope", settings.scope)
    table.add_row("Audience", settings.audience or "-")

    console.print(table)


@auth_app.command()
def login(
    scope: ScopeOption = None,
    audience: AudienceOption = None,
    connection: ConnectionOption = None,
    organization: OrganizationOption = None,
    invitation_url: InvitationOption = None,
    implicit: Annotated[
        bool, typer.Option("--implicit", help="Use the implicit grant instead of PKCE.")
    ] = False,
    port: Annotated[int, typer.Option("--port", help="Loopback port, 0 picks a free one.")] = 0,
    timeout: Annotated[
        float | None, typer.Option("--timeout", help="Seconds to wait for the browser.")
    ] = None,
    show_tokens: Annotated[
        bool, typer.Option("--show-tokens", help="Print tokens unmasked.")
    ] = False,
) -> None:
    """Log in through the browser using a loopback redirect."""
    overrides = _overrides(scope, audience, connection, organization, invitation_url, implicit)
    try:
        credentials = asyncio.run(_login_async(overrides, port, timeout))
    except WebAuthError as e:
        console.print(f"\n[red]Authentication failed: {login_error_message(e)}[/red]")
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(130) from None

    console.print("\n[green bold]Successfully authenticated![/green bold]")
    _print_credentials(credentials, show_tokens=show_tokens)


async def _login_async(overrides: dict[str, Any], port: int, timeout: float | None) -> Credentials:
    """Run the login against a loopback callback server."""
    settings = get_settings()
    registry = TransactionRegistry()

    async with CallbackServer(registry, port=port) as server:
        config = WebAuthConfig.from_settings(settings, redirect_url=server.callback_url, **overrides)
        webauth = WebAuth(
            config,
            registry=registry,
            exchanger=AuthenticationClient(config.client_id, config.domain, timeout=settings.http_timeout),
        )
        console.print("\n[dim]Opening browser for authentication...[/dim]")
        console.print(f"[dim]Waiting for the redirect on {server.callback_url}[/dim]")
        return await webauth.login(timeout=timeout or settings.login_timeout)


@auth_app.command()
def logout(
    federated: Annotated[
        bool, typer.Option("--federated", help="Also log out of the upstream identity provider.")
    ] = False,
    port: Annotated[int, typer.Option("--port", help="Loopback port, 0 picks a free one.")] = 0,
) -> None:
    """Clear the authorization server session in the browser."""
    try:
        ok = asyncio.run(_logout_async(federated, port))
    except WebAuthError as e:
        console.print(f"\n[red]Logout failed: {e}[/red]")
        raise typer.Exit(1) from e

    if not ok:
        console.print("[red]Logout did not complete[/red]")
        raise typer.Exit(1)
    console.print("[green]Logged out[/green]")


async def _logout_async(federated: bool, port: int) -> bool:
    settings = get_settings()
    registry = TransactionRegistry()

    async with CallbackServer(registry, port=port) as server:
        config = WebAuthConfig.from_settings(settings, redirect_url=server.callback_url)
        webauth = WebAuth(config, registry=registry)
        return await webauth.logout(federated=federated, timeout=settings.login_timeout)


@auth_app.command("url")
def authorize_url(
    redirect_url: Annotated[
        str | None, typer.Option("--redirect-url", help="Override the configured redirect URL.")
    ] = None,
    state: Annotated[str | None, typer.Option("--state", help="Fixed state value.")] = None,
    scope: ScopeOption = None,
    audience: AudienceOption = None,
    connection: ConnectionOption = None,
    organization: OrganizationOption = None,
    invitation_url: InvitationOption = None,
    implicit: Annotated[
        bool, typer.Option("--implicit", help="Use the implicit grant instead of PKCE.")
    ] = False,
) -> None:
    """Print the authorize URL without opening a browser."""
    overrides = _overrides(scope, audience, connection, organization, invitation_url, implicit)
    if redirect_url:
        overrides["redirect_url"] = redirect_url
    if state:
        overrides["state"] = state

    try:
        webauth = WebAuth(WebAuthConfig.from_settings(**overrides))
        _, url = webauth.prepare(lambda _result: None)
    except WebAuthError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    console.print(url, soft_wrap=True)
