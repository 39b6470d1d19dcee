"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the OAuth services and the
tool client share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class ProviderSettings(BaseSettings):
    """Endpoints and client registration details for the provider tenant."""

    model_config = SettingsConfigDict(extra="ignore")

    redirect_uri: AnyHttpUrl = Field(..., validation_alias="PROVIDER_REDIRECT_URI")
    scope: str = Field("mcp", validation_alias="PROVIDER_SCOPE")
    authorize_url_template: str = Field(
        "https://{account_id}.app.netsuite.com/app/login/oauth2/authorize.nl",
        validation_alias="PROVIDER_AUTHORIZE_URL_TEMPLATE",
        description="Authorize endpoint; '{account_id}' is the tenant identifier.",
    )
    token_url_template: str = Field(
        "https://{account_id}.suitetalk.api.netsuite.com"
        "/services/rest/auth/oauth2/v1/token",
        validation_alias="PROVIDER_TOKEN_URL_TEMPLATE",
    )
    mcp_url_template: str = Field(
        "https://{account_id}.suitetalk.api.netsuite.com/services/mcp/v1/all",
        validation_alias="PROVIDER_MCP_URL_TEMPLATE",
    )

    @field_validator(
        "authorize_url_template", "token_url_template", "mcp_url_template"
    )
    @classmethod
    def _requires_account_placeholder(cls, value: str) -> str:
        if "{account_id}" not in value:
            raise ValueError("Endpoint templates must contain '{account_id}'.")
        return value


class OAuthSettings(BaseSettings):
    """OAuth flow and token lifecycle configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL")
    refresh_buffer_seconds: int = Field(300, validation_alias="OAUTH_REFRESH_BUFFER")
    token_timeout_seconds: float = Field(15.0, validation_alias="OAUTH_TOKEN_TIMEOUT")
    fail_closed_on_network_error: bool = Field(
        True,
        validation_alias="OAUTH_FAIL_CLOSED_ON_NETWORK_ERROR",
        description=(
            "Delete the stored token when a refresh fails without an HTTP "
            "response. Provider rejections always delete the token."
        ),
    )

    @field_validator("state_ttl_seconds", "refresh_buffer_seconds")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Durations must not be negative.")
        return value


class MCPSettings(BaseSettings):
    """Timeouts for the JSON-RPC tool endpoint."""

    model_config = SettingsConfigDict(extra="ignore")

    list_timeout_seconds: float = Field(15.0, validation_alias="MCP_LIST_TIMEOUT")
    call_timeout_seconds: float = Field(30.0, validation_alias="MCP_CALL_TIMEOUT")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    token_encryption_secret: str = Field(
        ...,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    database_path: str = Field(
        "data/mcp_bridge.sqlite3", validation_alias="APP_DATABASE_PATH"
    )
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    mcp: MCPSettings = Field(default_factory=MCPSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "MCPSettings",
    "OAuthSettings",
    "ProviderSettings",
    "SecuritySettings",
    "get_settings",
]
