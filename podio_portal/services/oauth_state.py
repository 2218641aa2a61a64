"""
Single-use OAuth state nonces guarding the authorization-code callback.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable

from podio_portal.core.config import OAuthSettings
from podio_portal.core.errors import InvalidStateError
from podio_portal.models.oauth import OAuthState, utcnow
from podio_portal.services.token_store import RecordStore

logger = logging.getLogger(__name__)


class OAuthStateStore:
    """Issue states and consume each one at most once."""

    PARTITION_KEY = "oauth#state"
    SORT_PREFIX = "state#"

    def __init__(
        self,
        store: RecordStore,
        oauth_settings: OAuthSettings,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._ttl = timedelta(seconds=oauth_settings.state_ttl_seconds)
        self._clock = clock

    def issue(self) -> OAuthState:
        """Store a fresh state, dropping any that expired without a callback."""
        purged = self.purge_expired()
        if purged:
            logger.info("Purged %s expired OAuth states", purged)
        now = self._clock()
        state = OAuthState(
            state=secrets.token_urlsafe(32),
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._store.put_item(
            {
                "pk": self.PARTITION_KEY,
                "sk": f"{self.SORT_PREFIX}{state.state}",
                "state": state.state,
                "created_at": state.created_at.isoformat(),
                "expires_at": state.expires_at.isoformat(),
                "updated_at": state.created_at.isoformat(),
            }
        )
        return state

    def consume(self, state: str) -> OAuthState:
        """Match and delete ``state``; raise ``InvalidStateError`` otherwise."""
        if not state:
            raise InvalidStateError("Missing OAuth state parameter.")
        key = f"{self.SORT_PREFIX}{state}"
        item = self._store.get_item(partition_key=self.PARTITION_KEY, sort_key=key)
        if not item:
            logger.warning("Rejected unknown or replayed OAuth state")
            raise InvalidStateError("Unknown or already used OAuth state.")
        # Delete first so a concurrent replay cannot also succeed.
        if not self._store.delete_item(partition_key=self.PARTITION_KEY, sort_key=key):
            raise InvalidStateError("Unknown or already used OAuth state.")

        record = OAuthState(
            state=item["state"],
            created_at=_aware(item["created_at"]),
            expires_at=_aware(item["expires_at"]),
        )
        if record.is_expired(self._clock()):
            logger.warning("Rejected expired OAuth state")
            raise InvalidStateError("OAuth state has expired; start the login again.")
        return record

    def purge_expired(self) -> int:
        now = self._clock()
        removed = 0
        for item in self._store.list_items_with_prefix(
            partition_key=self.PARTITION_KEY, sort_key_prefix=self.SORT_PREFIX
        ):
            if _aware(item["expires_at"]) <= now and self._store.delete_item(
                partition_key=self.PARTITION_KEY, sort_key=item["sk"]
            ):
                removed += 1
        return removed


def _aware(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = ["OAuthStateStore"]
