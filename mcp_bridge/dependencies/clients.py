"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from mcp_bridge.clients import (
    MCPToolClient,
    ProviderOAuthClient,
    SQLiteStore,
    TenantConfigStore,
)
from mcp_bridge.core.config import get_settings
from mcp_bridge.services import (
    AuthorizationFlow,
    DynamicToolRegistry,
    OAuthTokenStore,
    PKCESessionStore,
    ProviderTokenService,
    ProviderToolService,
    TokenCipherService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide shared SQLite record store."""
    settings = _settings()
    return SQLiteStore(settings.database_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    return TokenCipherService(secret=settings.security.token_encryption_secret)


@lru_cache()
def get_tenant_config_store() -> TenantConfigStore:
    return TenantConfigStore(get_sqlite_store())


@lru_cache()
def get_token_store() -> OAuthTokenStore:
    return OAuthTokenStore(get_sqlite_store(), get_token_cipher_service())


@lru_cache()
def get_pkce_session_store() -> PKCESessionStore:
    """Provide the PKCE session store with the configured state TTL."""
    settings = _settings()
    return PKCESessionStore(
        get_sqlite_store(), ttl_seconds=settings.oauth.state_ttl_seconds
    )


@lru_cache()
def get_provider_oauth_client() -> ProviderOAuthClient:
    """Create a singleton provider OAuth client."""
    settings = _settings()
    return ProviderOAuthClient(
        settings.provider, settings.oauth, get_tenant_config_store()
    )


@lru_cache()
def get_mcp_tool_client() -> MCPToolClient:
    """Create a singleton JSON-RPC tool client."""
    settings = _settings()
    return MCPToolClient(settings.provider, settings.mcp, get_tenant_config_store())


@lru_cache()
def get_provider_token_service() -> ProviderTokenService:
    """Provide the token lifecycle manager.

    Cached so every request shares the same per-user refresh locks.
    """
    settings = _settings()
    return ProviderTokenService(
        token_store=get_token_store(),
        oauth_client=get_provider_oauth_client(),
        oauth_settings=settings.oauth,
    )


def get_authorization_flow() -> AuthorizationFlow:
    """Build the authorization-code flow orchestrator."""
    return AuthorizationFlow(
        oauth_client=get_provider_oauth_client(),
        session_store=get_pkce_session_store(),
        token_service=get_provider_token_service(),
    )


def get_tool_registry() -> DynamicToolRegistry:
    return DynamicToolRegistry(get_provider_token_service(), get_mcp_tool_client())


def get_provider_tool_service() -> ProviderToolService:
    """Build the facade used by chat orchestration and the tool routes."""
    return ProviderToolService(get_provider_token_service(), get_tool_registry())


__all__ = [
    "get_authorization_flow",
    "get_mcp_tool_client",
    "get_pkce_session_store",
    "get_provider_oauth_client",
    "get_provider_token_service",
    "get_provider_tool_service",
    "get_sqlite_store",
    "get_tenant_config_store",
    "get_token_cipher_service",
    "get_token_store",
    "get_tool_registry",
]
