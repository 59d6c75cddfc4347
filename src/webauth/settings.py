"""Application settings loaded from the environment."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Login settings loaded from WEBAUTH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WEBAUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    client_id: str | None = None
    domain: str | None = None

    # Redirect resolution: explicit URL wins, otherwise derived from app_identifier
    redirect_url: str | None = None
    app_identifier: str | None = None
    universal_link: bool = False

    scope: str = "openid profile email"
    audience: str | None = None
    connection: str | None = None
    leeway: int = 60 * 1000
    ephemeral_session: bool = False
    telemetry: bool = True

    login_timeout: float = 300.0
    http_timeout: float = 30.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
