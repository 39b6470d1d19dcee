"""
Persistence for the single provider token record kept per user.
"""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from mcp_bridge.clients.sqlite_store import RecordStore
from mcp_bridge.models.oauth import StoredOAuthToken
from mcp_bridge.services.token_cipher import TokenCipherError, TokenCipherService


class TokenRecordError(Exception):
    """Raised when a stored token record exists but cannot be used."""


class OAuthTokenStore:
    """Encrypting token repository over a partition/sort-key record store."""

    _SORT_KEY = "oauth#provider"

    def __init__(self, record_store: RecordStore, token_cipher: TokenCipherService) -> None:
        self._store = record_store
        self._cipher = token_cipher

    @staticmethod
    def _partition_key(user_id: str) -> str:
        return f"user#{user_id}"

    def get(self, user_id: str) -> Optional[StoredOAuthToken]:
        record = self._store.get_item(
            partition_key=self._partition_key(user_id), sort_key=self._SORT_KEY
        )
        if not record:
            return None

        try:
            return StoredOAuthToken(
                user_id=user_id,
                tenant_id=record["tenant_id"],
                access_token=self._cipher.decrypt(record["access_token_encrypted"]),
                refresh_token=self._cipher.decrypt(record["refresh_token_encrypted"]),
                expires_at=record["expires_at"],
                token_type=record.get("token_type") or "Bearer",
                created_at=record["created_at"],
                updated_at=record["updated_at"],
            )
        except (KeyError, TokenCipherError, ValidationError) as exc:
            raise TokenRecordError(
                f"Stored token for user {user_id} is unreadable; re-authentication required."
            ) from exc

    def save(self, token: StoredOAuthToken) -> None:
        """Insert or fully replace the user's token record."""
        self._store.put_item(
            {
                "pk": self._partition_key(token.user_id),
                "sk": self._SORT_KEY,
                "user_id": token.user_id,
                "tenant_id": token.tenant_id,
                "access_token_encrypted": self._cipher.encrypt(token.access_token),
                "refresh_token_encrypted": self._cipher.encrypt(token.refresh_token),
                "expires_at": token.expires_at.isoformat(),
                "token_type": token.token_type,
                "created_at": token.created_at.isoformat(),
                "updated_at": token.updated_at.isoformat(),
            }
        )

    def delete(self, user_id: str) -> bool:
        return self._store.delete_item(
            partition_key=self._partition_key(user_id), sort_key=self._SORT_KEY
        )


__all__ = ["OAuthTokenStore", "TokenRecordError"]
