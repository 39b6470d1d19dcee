"""
Domain models for OAuth token, tenant and PKCE session persistence.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# Tenant ids become a hostname label in every endpoint URL.
ACCOUNT_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredOAuthToken(BaseModel):
    """Represents the single token record kept for a user."""

    user_id: str
    tenant_id: str = Field(..., description="Provider account the token was issued by.")
    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str = "Bearer"
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class TenantConfig(BaseModel):
    """Per-user provider tenant registration."""

    user_id: str
    account_id: str = Field(
        ...,
        pattern=ACCOUNT_ID_PATTERN,
        description="Tenant identifier used in endpoint URLs.",
    )
    client_id: str = Field(..., description="Public OAuth client (integration) id.")
    updated_at: datetime = Field(default_factory=_utcnow)


class AuthorizationStatus(str, Enum):
    """Stages of a single authorization attempt."""

    INIT = "init"
    AUTH_REQUESTED = "auth_requested"
    CALLBACK_RECEIVED = "callback_received"
    STATE_VALIDATED = "state_validated"
    TOKEN_EXCHANGED = "token_exchanged"
    FAILED = "failed"


class PKCESession(BaseModel):
    """Ephemeral verifier/state pair bound to one authorization attempt."""

    session_id: str
    user_id: Optional[str] = None
    code_verifier: Optional[str] = None
    code_challenge: str
    state: str
    status: AuthorizationStatus = AuthorizationStatus.INIT
    created_at: datetime = Field(default_factory=_utcnow)


__all__ = [
    "ACCOUNT_ID_PATTERN",
    "AuthorizationStatus",
    "PKCESession",
    "StoredOAuthToken",
    "TenantConfig",
]
