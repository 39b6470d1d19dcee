"""Schemas related to the provider OAuth flow and tenant settings."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from mcp_bridge.models.oauth import ACCOUNT_ID_PATTERN


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: Optional[str] = Field(None, description="Authorization code returned by the provider.")
    state: Optional[str] = Field(None, description="State issued when starting OAuth.")
    session_id: Optional[str] = Field(
        None,
        description="PKCE session id; falls back to the session cookie when omitted.",
    )
    error: Optional[str] = Field(None, description="Provider-side rejection reason.")


class AuthorizationStartResponse(BaseModel):
    authorization_url: str
    state: str
    session_id: str


class TenantSettingsPayload(BaseModel):
    """Tenant registration entered by the user."""

    account_id: str = Field(
        ...,
        pattern=ACCOUNT_ID_PATTERN,
        description="Provider account id; letters, digits, '-' and '_' only.",
    )
    client_id: str = Field(..., min_length=1, description="Public OAuth client id.")


class TenantSettingsResponse(BaseModel):
    configured: bool
    account_id: Optional[str] = None
    client_id: Optional[str] = None
    updated_at: Optional[datetime] = None


class ConnectionStatus(BaseModel):
    connected: bool
    tool_count: int = 0
    expires_at: Optional[datetime] = None


__all__ = [
    "AuthorizationStartResponse",
    "ConnectionStatus",
    "OAuthCallbackPayload",
    "TenantSettingsPayload",
    "TenantSettingsResponse",
]
