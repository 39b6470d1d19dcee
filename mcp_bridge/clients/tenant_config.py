"""Per-user provider tenant registration (account id and public client id)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from mcp_bridge.clients.sqlite_store import RecordStore
from mcp_bridge.models.oauth import TenantConfig

logger = logging.getLogger(__name__)


class ConfigurationMissingError(Exception):
    """Raised when a user has no usable tenant or client configuration."""

    error_code = "configuration_missing"

    def __init__(self, user_id: str) -> None:
        super().__init__(
            "Provider configuration is missing. Configure the account id and "
            f"client id for user {user_id} first."
        )
        self.user_id = user_id


class TenantConfigStore:
    """Reads and writes tenant settings kept next to the user's token record."""

    _SORT_KEY = "settings#tenant"

    def __init__(self, record_store: RecordStore) -> None:
        self._store = record_store

    def get(self, user_id: str) -> Optional[TenantConfig]:
        record = self._store.get_item(
            partition_key=f"user#{user_id}", sort_key=self._SORT_KEY
        )
        if not record:
            return None
        try:
            config = TenantConfig(
                user_id=user_id,
                account_id=record.get("account_id") or "",
                client_id=record.get("client_id") or "",
                updated_at=record.get("updated_at") or datetime.now(timezone.utc),
            )
        except ValidationError:
            logger.warning(
                "Ignoring unusable tenant settings", extra={"user_id": user_id}
            )
            return None
        if not config.client_id:
            return None
        return config

    def require(self, user_id: str) -> TenantConfig:
        """Return the user's tenant config or raise ``ConfigurationMissingError``."""
        config = self.get(user_id)
        if config is None:
            raise ConfigurationMissingError(user_id)
        return config

    def save(self, *, user_id: str, account_id: str, client_id: str) -> TenantConfig:
        """Persist the tenant settings.

        Raises ``pydantic.ValidationError`` (a ``ValueError``) when the account
        id is not a single hostname label.
        """
        config = TenantConfig(
            user_id=user_id,
            account_id=account_id.strip(),
            client_id=client_id.strip(),
        )
        self._store.put_item(
            {
                "pk": f"user#{user_id}",
                "sk": self._SORT_KEY,
                "account_id": config.account_id,
                "client_id": config.client_id,
                "updated_at": config.updated_at.isoformat(),
            }
        )
        return config

    def delete(self, user_id: str) -> bool:
        return self._store.delete_item(
            partition_key=f"user#{user_id}", sort_key=self._SORT_KEY
        )


__all__ = ["ConfigurationMissingError", "TenantConfigStore"]
