"""Storage for in-flight PKCE authorization attempts with TTL pruning."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from pydantic import ValidationError

from mcp_bridge.clients.sqlite_store import RecordStore
from mcp_bridge.models.oauth import AuthorizationStatus, PKCESession


class PKCESessionStore:
    """Keeps one short-lived record per authorization attempt."""

    _PARTITION_KEY = "pkce"
    _SORT_PREFIX = "session#"

    def __init__(self, record_store: RecordStore, ttl_seconds: int = 600) -> None:
        self._store = record_store
        self._ttl = timedelta(seconds=ttl_seconds)

    def _sort_key(self, session_id: str) -> str:
        return f"{self._SORT_PREFIX}{session_id}"

    def _is_expired(self, session: PKCESession) -> bool:
        created_at = session.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) - created_at > self._ttl

    def _save(self, session: PKCESession) -> None:
        item = session.model_dump(mode="json")
        item.update(pk=self._PARTITION_KEY, sk=self._sort_key(session.session_id))
        self._store.put_item(item)

    def create(
        self, *, user_id: str, code_verifier: str, code_challenge: str, state: str
    ) -> PKCESession:
        self.prune()
        session = PKCESession(
            session_id=uuid4().hex,
            user_id=user_id,
            code_verifier=code_verifier,
            code_challenge=code_challenge,
            state=state,
            status=AuthorizationStatus.AUTH_REQUESTED,
        )
        self._save(session)
        return session

    def get(self, session_id: str) -> Optional[PKCESession]:
        """Return a live session; expired or unreadable sessions are removed."""
        record = self._store.get_item(
            partition_key=self._PARTITION_KEY, sort_key=self._sort_key(session_id)
        )
        if not record:
            return None
        try:
            session = PKCESession.model_validate(record)
        except ValidationError:
            self.delete(session_id)
            return None
        if self._is_expired(session):
            self.delete(session_id)
            return None
        return session

    def update_status(self, session: PKCESession, status: AuthorizationStatus) -> PKCESession:
        session.status = status
        self._save(session)
        return session

    def delete(self, session_id: str) -> None:
        self._store.delete_item(
            partition_key=self._PARTITION_KEY, sort_key=self._sort_key(session_id)
        )

    def prune(self) -> int:
        removed = 0
        for record in self._store.list_items_with_prefix(
            partition_key=self._PARTITION_KEY, sort_key_prefix=self._SORT_PREFIX
        ):
            session_id = record.get("session_id")
            if not session_id:
                continue
            try:
                session = PKCESession.model_validate(record)
            except ValidationError:
                session = None
            if session is None or self._is_expired(session):
                self.delete(session_id)
                removed += 1
        return removed


__all__ = ["PKCESessionStore"]
