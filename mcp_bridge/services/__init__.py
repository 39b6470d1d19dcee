"""Service layer exports."""

from .oauth_flow import (
    AuthorizationFlow,
    AuthorizationRequest,
    MissingSessionDataError,
    OAuthFlowError,
    ProviderAuthorizationError,
    StateMismatchError,
)
from .pkce_sessions import PKCESessionStore
from .provider_tokens import ProviderTokenService
from .provider_tools import ProviderToolService
from .token_cipher import TokenCipherService
from .token_store import OAuthTokenStore
from .tool_registry import AuthenticationRequiredError, DynamicToolRegistry

__all__ = [
    "AuthenticationRequiredError",
    "AuthorizationFlow",
    "AuthorizationRequest",
    "DynamicToolRegistry",
    "MissingSessionDataError",
    "OAuthFlowError",
    "OAuthTokenStore",
    "PKCESessionStore",
    "ProviderAuthorizationError",
    "ProviderTokenService",
    "ProviderToolService",
    "StateMismatchError",
    "TokenCipherService",
]
