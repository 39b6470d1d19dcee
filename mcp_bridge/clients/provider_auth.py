"""
Provider OAuth utilities.

These helpers build the tenant authorization URL and talk to the tenant token
endpoint for the PKCE public-client flow. No client secret is ever sent.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from mcp_bridge.clients.tenant_config import TenantConfigStore
from mcp_bridge.core.config import OAuthSettings, ProviderSettings
from mcp_bridge.models.oauth import TenantConfig

logger = logging.getLogger(__name__)


class ProviderTokenError(Exception):
    """Raised when the token endpoint rejects a request or cannot be reached."""

    error_code = "token_error"

    def __init__(self, status_code: Optional[int], body: str) -> None:
        detail = f"HTTP {status_code}" if status_code is not None else "no response"
        super().__init__(f"{self.__class__.__name__}: {detail} {body}".strip())
        self.status_code = status_code
        self.body = body


class TokenExchangeError(ProviderTokenError):
    """Raised when an authorization code cannot be traded for tokens."""

    error_code = "token_exchange_failed"


class TokenRefreshError(ProviderTokenError):
    """Raised when a refresh token is rejected or the refresh call fails.

    ``status_code`` is ``None`` when no HTTP response was received.
    """

    error_code = "token_refresh_failed"


class TokenResponse(BaseModel):
    """Subset of the token endpoint response the bridge relies on."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int
    token_type: str = "Bearer"


class ProviderOAuthClient:
    """Build tenant authorization URLs and exchange or refresh tokens."""

    def __init__(
        self,
        provider_settings: ProviderSettings,
        oauth_settings: OAuthSettings,
        tenant_configs: TenantConfigStore,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._provider = provider_settings
        self._oauth = oauth_settings
        self._tenants = tenant_configs
        self._transport = transport

    def tenant_config(self, user_id: str) -> TenantConfig:
        return self._tenants.require(user_id)

    def _token_url(self, config: TenantConfig) -> str:
        return self._provider.token_url_template.format(account_id=config.account_id)

    def build_authorization_url(
        self, *, user_id: str, code_challenge: str, state: str
    ) -> str:
        """Construct the tenant consent URL for an S256 PKCE request."""
        config = self.tenant_config(user_id)
        base_url = self._provider.authorize_url_template.format(
            account_id=config.account_id
        )
        params = {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": str(self._provider.redirect_uri),
            "scope": self._provider.scope,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{base_url}?{urlencode(params)}"

    async def exchange_authorization_code(
        self, *, user_id: str, code: str, code_verifier: str, state: str
    ) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        ``state`` must already have been checked against the PKCE session by
        the caller; the token endpoint does not receive it.
        """
        config = self.tenant_config(user_id)
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": str(self._provider.redirect_uri),
            "client_id": config.client_id,
            "code_verifier": code_verifier,
        }

        try:
            response = await self._post_form(self._token_url(config), payload)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TokenExchangeError(None, str(exc)) from exc

        if not response.is_success:
            logger.warning(
                "Token exchange rejected for user %s with HTTP %s",
                user_id,
                response.status_code,
            )
            raise TokenExchangeError(response.status_code, response.text)

        token = self._parse_token_payload(response, TokenExchangeError)
        if not token.refresh_token:
            raise TokenExchangeError(
                response.status_code, "Token payload is missing refresh_token."
            )
        return token

    async def refresh_token(self, *, user_id: str, refresh_token: str) -> TokenResponse:
        """Trade a refresh token for a new access token (and maybe a rotated refresh token)."""
        config = self.tenant_config(user_id)
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": config.client_id,
        }

        try:
            response = await self._post_form(self._token_url(config), payload)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TokenRefreshError(None, str(exc)) from exc

        if not response.is_success:
            raise TokenRefreshError(response.status_code, response.text)

        return self._parse_token_payload(response, TokenRefreshError)

    async def _post_form(self, url: str, payload: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self._oauth.token_timeout_seconds, transport=self._transport
        ) as client:
            return await client.post(
                url, data=payload, headers={"Accept": "application/json"}
            )

    @staticmethod
    def _parse_token_payload(
        response: httpx.Response, error_cls: type[ProviderTokenError]
    ) -> TokenResponse:
        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise error_cls(
                response.status_code, "Incomplete token payload returned by provider."
            ) from exc


__all__ = [
    "ProviderOAuthClient",
    "ProviderTokenError",
    "TokenExchangeError",
    "TokenRefreshError",
    "TokenResponse",
]
