"""
Durable storage of the deployment's single Podio token record.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from podio_portal.models.oauth import TokenRecord
from podio_portal.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Interface shared by ``SQLiteStore`` and ``DynamoDBClient``."""

    def put_item(self, item: Dict[str, Any]) -> None: ...

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]: ...

    def delete_item(self, *, partition_key: str, sort_key: str) -> bool: ...

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]: ...


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TokenStore:
    """Get-latest / upsert / clear over one constant-key record."""

    PARTITION_KEY = "podio#token"
    SORT_KEY = "current"

    def __init__(self, store: RecordStore, token_cipher: TokenCipherService) -> None:
        self._store = store
        self._cipher = token_cipher

    def get_latest(self) -> Optional[TokenRecord]:
        item = self._store.get_item(
            partition_key=self.PARTITION_KEY, sort_key=self.SORT_KEY
        )
        if not item:
            return None
        try:
            return self._deserialize(item)
        except ValueError:
            # Encryption secret changed without listing the old one as previous.
            logger.warning("Stored Podio token could not be decrypted; treating as absent")
            return None

    def upsert(self, record: TokenRecord) -> TokenRecord:
        """Write ``record`` as the current token, keeping the existing identity.

        Concurrent writers are resolved last-write-wins on ``updated_at``: an
        incoming record older than the stored one is dropped and the stored
        record is returned instead.
        """
        existing = self.get_latest()
        if existing is not None:
            if existing.updated_at > record.updated_at:
                logger.info("Discarding token write older than the stored record")
                return existing
            record = record.model_copy(
                update={"token_id": existing.token_id, "created_at": existing.created_at}
            )
        self._store.put_item(self._serialize(record))
        logger.info(
            "Stored Podio token",
            extra={"token_id": record.token_id, "grant_type": record.grant_type},
        )
        return record

    def clear(self) -> bool:
        removed = self._store.delete_item(
            partition_key=self.PARTITION_KEY, sort_key=self.SORT_KEY
        )
        logger.info("Cleared stored Podio token", extra={"removed": removed})
        return removed

    def _serialize(self, record: TokenRecord) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "pk": self.PARTITION_KEY,
            "sk": self.SORT_KEY,
            "token_id": record.token_id,
            "access_token_encrypted": self._cipher.encrypt(record.access_token),
            "expires_at": record.expires_at.isoformat(),
            "token_type": record.token_type,
            "grant_type": record.grant_type,
            "created_at": record.created_at.isoformat(),
            "updated_at": record.updated_at.isoformat(),
        }
        if record.refresh_token:
            item["refresh_token_encrypted"] = self._cipher.encrypt(record.refresh_token)
        if record.scope:
            item["scope"] = record.scope
        return item

    def _deserialize(self, item: Dict[str, Any]) -> TokenRecord:
        refresh_encrypted = item.get("refresh_token_encrypted")
        return TokenRecord(
            token_id=item["token_id"],
            access_token=self._cipher.decrypt(item["access_token_encrypted"]),
            refresh_token=self._cipher.decrypt(refresh_encrypted)
            if refresh_encrypted
            else None,
            expires_at=_parse_datetime(item["expires_at"]),
            scope=item.get("scope"),
            token_type=item.get("token_type") or "bearer",
            grant_type=item.get("grant_type") or "authorization_code",
            created_at=_parse_datetime(item["created_at"]),
            updated_at=_parse_datetime(item["updated_at"]),
        )


__all__ = ["RecordStore", "TokenStore"]
