"""
Authorization-code + PKCE flow orchestration.

``AuthorizationFlow.start`` issues the verifier/challenge/state triple and the
consent URL; ``AuthorizationFlow.complete`` validates the callback against the
stored PKCE session, exchanges the code and hands the tokens to the token
lifecycle service. Flow errors are terminal for that attempt and are never
retried here.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from mcp_bridge.clients.provider_auth import ProviderOAuthClient, TokenExchangeError
from mcp_bridge.clients.tenant_config import ConfigurationMissingError
from mcp_bridge.models.oauth import AuthorizationStatus, PKCESession, StoredOAuthToken
from mcp_bridge.services.pkce import (
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
)
from mcp_bridge.services.pkce_sessions import PKCESessionStore
from mcp_bridge.services.provider_tokens import ProviderTokenService

logger = logging.getLogger(__name__)


class OAuthFlowError(Exception):
    """Base class for errors that abort an authorization attempt."""

    error_code = "oauth_flow_failed"


class StateMismatchError(OAuthFlowError):
    """Callback state does not match the stored session (possible CSRF)."""

    error_code = "state_mismatch"


class MissingSessionDataError(OAuthFlowError):
    """The PKCE session lacks its verifier or owning user."""

    error_code = "missing_session_data"


class ProviderAuthorizationError(OAuthFlowError):
    """The provider redirected back with an ``error`` parameter."""

    error_code = "provider_auth_failed"


@dataclass(frozen=True)
class AuthorizationRequest:
    authorization_url: str
    session: PKCESession


class AuthorizationFlow:
    """Drives one authorization attempt from consent URL to stored token."""

    def __init__(
        self,
        oauth_client: ProviderOAuthClient,
        session_store: PKCESessionStore,
        token_service: ProviderTokenService,
    ) -> None:
        self._oauth = oauth_client
        self._sessions = session_store
        self._tokens = token_service

    def start(self, user_id: str) -> AuthorizationRequest:
        """Create a PKCE session for ``user_id`` and return the consent URL.

        Raises ``ConfigurationMissingError`` before any session is stored when
        the user has no tenant configuration.
        """
        code_verifier = generate_code_verifier()
        code_challenge = generate_code_challenge(code_verifier)
        state = generate_state()

        authorization_url = self._oauth.build_authorization_url(
            user_id=user_id, code_challenge=code_challenge, state=state
        )
        session = self._sessions.create(
            user_id=user_id,
            code_verifier=code_verifier,
            code_challenge=code_challenge,
            state=state,
        )
        logger.info(
            "Started provider authorization",
            extra={"user_id": user_id, "session_id": session.session_id},
        )
        return AuthorizationRequest(authorization_url=authorization_url, session=session)

    async def complete(
        self,
        *,
        session_id: Optional[str],
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> StoredOAuthToken:
        """Validate the callback and exchange the code.

        Checks run in a fixed order: provider error, state, session data,
        then the exchange itself.
        """
        session = self._sessions.get(session_id) if session_id else None
        if session is not None:
            self._sessions.update_status(session, AuthorizationStatus.CALLBACK_RECEIVED)

        if error:
            self._fail(session)
            raise ProviderAuthorizationError(error)

        if (
            session is None
            or not state
            or not hmac.compare_digest(session.state.encode("utf-8"), state.encode("utf-8"))
        ):
            self._fail(session)
            logger.warning(
                "Rejected provider callback with mismatched state",
                extra={"session_id": session_id},
            )
            raise StateMismatchError("OAuth state does not match the stored session.")

        if not session.code_verifier or not session.user_id:
            self._fail(session)
            raise MissingSessionDataError(
                "Authorization session is missing its verifier or user."
            )
        if not code:
            self._fail(session)
            raise MissingSessionDataError("Callback did not include an authorization code.")

        self._sessions.update_status(session, AuthorizationStatus.STATE_VALIDATED)
        user_id = session.user_id

        try:
            tenant = self._oauth.tenant_config(user_id)
            token = await self._oauth.exchange_authorization_code(
                user_id=user_id,
                code=code,
                code_verifier=session.code_verifier,
                state=state,
            )
        except (ConfigurationMissingError, TokenExchangeError):
            self._fail(session)
            raise

        record = self._tokens.store_token(
            user_id=user_id, tenant_id=tenant.account_id, token=token
        )
        session.status = AuthorizationStatus.TOKEN_EXCHANGED
        self._sessions.delete(session.session_id)
        logger.info("Provider account connected", extra={"user_id": user_id})
        return record

    def _fail(self, session: Optional[PKCESession]) -> None:
        if session is not None:
            self._sessions.update_status(session, AuthorizationStatus.FAILED)


__all__ = [
    "AuthorizationFlow",
    "AuthorizationRequest",
    "MissingSessionDataError",
    "OAuthFlowError",
    "ProviderAuthorizationError",
    "StateMismatchError",
]
