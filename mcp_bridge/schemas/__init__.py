"""Pydantic schemas exposed by the API layer."""

from .auth import (
    AuthorizationStartResponse,
    ConnectionStatus,
    OAuthCallbackPayload,
    TenantSettingsPayload,
    TenantSettingsResponse,
)
from .tools import (
    ToolDescriptor,
    ToolInvocationError,
    ToolInvocationRequest,
    ToolInvocationResult,
    ToolSummary,
)

__all__ = [
    "AuthorizationStartResponse",
    "ConnectionStatus",
    "OAuthCallbackPayload",
    "TenantSettingsPayload",
    "TenantSettingsResponse",
    "ToolDescriptor",
    "ToolInvocationError",
    "ToolInvocationRequest",
    "ToolInvocationResult",
    "ToolSummary",
]
