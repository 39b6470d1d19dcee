"""Client integrations for external services."""

from .mcp_rpc import (
    MCPToolClient,
    ToolClientError,
    ToolHTTPError,
    ToolRPCError,
    ToolTimeoutError,
)
from .provider_auth import (
    ProviderOAuthClient,
    ProviderTokenError,
    TokenExchangeError,
    TokenRefreshError,
    TokenResponse,
)
from .sqlite_store import RecordStore, SQLiteStore
from .tenant_config import ConfigurationMissingError, TenantConfigStore

__all__ = [
    "ConfigurationMissingError",
    "MCPToolClient",
    "ProviderOAuthClient",
    "ProviderTokenError",
    "RecordStore",
    "SQLiteStore",
    "TenantConfigStore",
    "TokenExchangeError",
    "TokenRefreshError",
    "TokenResponse",
    "ToolClientError",
    "ToolHTTPError",
    "ToolRPCError",
    "ToolTimeoutError",
]
