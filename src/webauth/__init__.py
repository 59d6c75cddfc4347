"""OAuth2 authorization code + PKCE login through an external user-agent."""

__version__ = "0.1.0"
