"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_authorization_flow,
    get_mcp_tool_client,
    get_pkce_session_store,
    get_provider_oauth_client,
    get_provider_token_service,
    get_provider_tool_service,
    get_sqlite_store,
    get_tenant_config_store,
    get_token_cipher_service,
    get_token_store,
    get_tool_registry,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
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
