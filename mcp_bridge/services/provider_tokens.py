"""
Token lifecycle management for provider OAuth credentials.

Every read of a provider access token goes through ``ProviderTokenService``.
It decides between reusing the stored token, refreshing it, or deleting it
when the refresh token no longer works.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, Optional

from mcp_bridge.clients.provider_auth import (
    ProviderOAuthClient,
    TokenRefreshError,
    TokenResponse,
)
from mcp_bridge.clients.tenant_config import ConfigurationMissingError
from mcp_bridge.core.config import OAuthSettings
from mcp_bridge.models.oauth import StoredOAuthToken
from mcp_bridge.services.token_store import OAuthTokenStore, TokenRecordError

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ProviderTokenService:
    """Single gate for reading, storing, refreshing and deleting provider tokens."""

    def __init__(
        self,
        token_store: OAuthTokenStore,
        oauth_client: ProviderOAuthClient,
        oauth_settings: OAuthSettings,
    ) -> None:
        self._store = token_store
        self._oauth = oauth_client
        self._refresh_window = timedelta(seconds=oauth_settings.refresh_buffer_seconds)
        self._fail_closed_on_network_error = oauth_settings.fail_closed_on_network_error
        self._refresh_locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    @asynccontextmanager
    async def _refresh_lock(self, user_id: str) -> AsyncIterator[None]:
        """Per-user lock, dropped once no task holds or awaits it."""
        lock = self._refresh_locks.setdefault(user_id, asyncio.Lock())
        self._lock_holders[user_id] = self._lock_holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_holders[user_id] - 1
            if remaining:
                self._lock_holders[user_id] = remaining
            else:
                del self._lock_holders[user_id]
                del self._refresh_locks[user_id]

    def _load(self, user_id: str) -> Optional[StoredOAuthToken]:
        try:
            return self._store.get(user_id)
        except TokenRecordError:
            logger.warning(
                "Discarding unreadable token record", extra={"user_id": user_id}
            )
            self._store.delete(user_id)
            return None

    def _expires_soon(self, token: StoredOAuthToken) -> bool:
        remaining = _as_utc(token.expires_at) - datetime.now(timezone.utc)
        return remaining < self._refresh_window

    async def get_valid_access_token(self, user_id: str) -> Optional[str]:
        """Return a usable access token for ``user_id`` or ``None`` when not connected."""
        token = self._load(user_id)
        if token is None:
            return None
        if not self._expires_soon(token):
            return token.access_token

        async with self._refresh_lock(user_id):
            # Another task may have refreshed (or dropped) the token while we waited.
            token = self._load(user_id)
            if token is None:
                return None
            if not self._expires_soon(token):
                return token.access_token
            return await self._refresh(token)

    async def _refresh(self, token: StoredOAuthToken) -> Optional[str]:
        user_id = token.user_id
        refreshed_at = datetime.now(timezone.utc)
        try:
            response = await self._oauth.refresh_token(
                user_id=user_id, refresh_token=token.refresh_token
            )
        except ConfigurationMissingError:
            logger.warning(
                "Cannot refresh token without tenant configuration",
                extra={"user_id": user_id},
            )
            return None
        except TokenRefreshError as exc:
            if exc.status_code is None and not self._fail_closed_on_network_error:
                logger.warning(
                    "Token refresh could not reach the provider; keeping stored token",
                    extra={"user_id": user_id},
                )
                return None
            logger.warning(
                "Token refresh failed (status %s); deleting stored token",
                exc.status_code,
                extra={"user_id": user_id},
            )
            self._store.delete(user_id)
            return None

        updated = token.model_copy(
            update={
                "access_token": response.access_token,
                "refresh_token": response.refresh_token or token.refresh_token,
                "token_type": response.token_type,
                "expires_at": refreshed_at + timedelta(seconds=response.expires_in),
                "updated_at": refreshed_at,
            }
        )
        self._store.save(updated)
        logger.info("Refreshed provider token", extra={"user_id": user_id})
        return updated.access_token

    def store_token(
        self, *, user_id: str, tenant_id: str, token: TokenResponse
    ) -> StoredOAuthToken:
        """Persist a freshly issued token, replacing any previous record."""
        if not token.refresh_token:
            raise ValueError("Issued token must include a refresh token.")
        now = datetime.now(timezone.utc)
        existing = self._load(user_id)
        record = StoredOAuthToken(
            user_id=user_id,
            tenant_id=tenant_id,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            token_type=token.token_type,
            expires_at=now + timedelta(seconds=token.expires_in),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._store.save(record)
        logger.info("Stored provider token", extra={"user_id": user_id})
        return record

    def disconnect(self, user_id: str) -> bool:
        """Delete the user's token record; returns whether one existed."""
        deleted = self._store.delete(user_id)
        logger.info(
            "Disconnected provider account",
            extra={"user_id": user_id, "had_token": deleted},
        )
        return deleted

    def describe(self, user_id: str) -> Dict[str, Any]:
        """Connection summary without secrets; never triggers a refresh."""
        token = self._load(user_id)
        if token is None:
            return {"has_token": False, "expires_at": None, "is_expired": None}
        expires_at = _as_utc(token.expires_at)
        return {
            "has_token": True,
            "tenant_id": token.tenant_id,
            "expires_at": expires_at.isoformat(),
            "is_expired": expires_at <= datetime.now(timezone.utc),
        }


__all__ = ["ProviderTokenService"]
