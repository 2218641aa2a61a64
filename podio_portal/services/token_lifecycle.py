"""
Decide whether the stored Podio token is usable and renew it when it is not.

Every gateway route that needs provider access goes through
``TokenLifecycleManager.ensure_valid``. At most one renewal is attempted per
call, bounded by a hard timeout; there is no retry loop and no backoff.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from podio_portal.clients.podio_auth import PodioOAuthClient
from podio_portal.core.config import OAuthSettings
from podio_portal.core.errors import (
    InvalidGrantError,
    NeedsReauthError,
    TokenNotFoundError,
    TransientError,
)
from podio_portal.models.oauth import TokenGrant, TokenRecord, utcnow
from podio_portal.services.token_store import TokenStore

logger = logging.getLogger(__name__)

AUTHORIZATION_CODE = "authorization_code"
CLIENT_CREDENTIALS = "client_credentials"


class TokenState(str, Enum):
    NO_TOKEN = "no_token"
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    REFRESH_FAILED = "refresh_failed"
    NEEDS_REAUTH = "needs_reauth"


@dataclass(frozen=True)
class AccessGrant:
    """A token the caller may use right now."""

    access_token: str
    expires_at: datetime
    state: TokenState
    refreshed: bool = False

    @property
    def stale(self) -> bool:
        return self.state is TokenState.REFRESH_FAILED


class TokenLifecycleManager:
    """Manages access to the persisted Podio token."""

    def __init__(
        self,
        token_store: TokenStore,
        oauth_client: PodioOAuthClient,
        oauth_settings: OAuthSettings,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = token_store
        self._oauth = oauth_client
        self._settings = oauth_settings
        self._clock = clock

    @property
    def buffer_window(self) -> timedelta:
        return timedelta(seconds=self._settings.refresh_buffer_seconds)

    def classify(self, record: Optional[TokenRecord], now: datetime) -> TokenState:
        if record is None:
            return TokenState.NO_TOKEN
        remaining = record.remaining(now)
        if remaining <= timedelta(0):
            return TokenState.EXPIRED
        if remaining <= self.buffer_window:
            return TokenState.EXPIRING_SOON
        return TokenState.VALID

    async def ensure_valid(self, *, user_required: bool = False) -> AccessGrant:
        """Return a usable access token, refreshing it first when close to expiry.

        Raises ``TokenNotFoundError`` when nothing is stored and no app-level
        token may be acquired, ``NeedsReauthError`` when the provider rejects
        the refresh token, and ``TransientError`` when renewal fails and the
        stored token cannot be used as a fallback. Rate limiting, malformed
        responses and configuration errors propagate unchanged.
        """
        now = self._clock()
        record = self._store.get_latest()
        state = self.classify(record, now)

        if state is TokenState.NO_TOKEN:
            if user_required or not self._settings.client_credentials_fallback:
                raise TokenNotFoundError(
                    "No Podio token found; an administrator must connect Podio first."
                )
            return await self._acquire_app_token()

        assert record is not None
        if state is TokenState.VALID:
            return AccessGrant(
                access_token=record.access_token,
                expires_at=record.expires_at,
                state=state,
            )

        logger.info("Podio token %s; renewing", state.value)
        try:
            grant = await asyncio.wait_for(
                self._renew(record), timeout=self._settings.refresh_timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            timeout_error = TransientError("Podio token refresh timed out.")
            if self._can_fall_back(record, now):
                return self._fallback(record, now, timeout_error)
            raise timeout_error from exc
        except InvalidGrantError as exc:
            logger.warning("Podio rejected the refresh token; reauthorization required")
            raise NeedsReauthError(
                "Podio authorization has expired; reconnect the account.",
                details=exc.details,
            ) from exc
        except TransientError as exc:
            if self._can_fall_back(record, now):
                return self._fallback(record, now, exc)
            raise

        renewed = self._store.upsert(record.renewed(grant, now=self._clock()))
        return AccessGrant(
            access_token=renewed.access_token,
            expires_at=renewed.expires_at,
            state=TokenState.VALID,
            refreshed=True,
        )

    async def store_authorization(self, grant: TokenGrant) -> TokenRecord:
        """Persist the result of an authorization-code exchange."""
        record = TokenRecord.from_grant(
            grant, grant_type=AUTHORIZATION_CODE, now=self._clock()
        )
        return self._store.upsert(record)

    def disconnect(self) -> bool:
        return self._store.clear()

    async def _renew(self, record: TokenRecord) -> TokenGrant:
        if record.refresh_token:
            return await self._oauth.refresh_token(record.refresh_token)
        if record.grant_type == CLIENT_CREDENTIALS:
            return await self._oauth.client_credentials()
        raise InvalidGrantError("Stored token has no refresh token.")

    async def _acquire_app_token(self) -> AccessGrant:
        logger.info("No stored Podio token; acquiring an app-level token")
        grant = await self._oauth.client_credentials()
        record = self._store.upsert(
            TokenRecord.from_grant(
                grant, grant_type=CLIENT_CREDENTIALS, now=self._clock()
            )
        )
        return AccessGrant(
            access_token=record.access_token,
            expires_at=record.expires_at,
            state=TokenState.VALID,
            refreshed=True,
        )

    def _can_fall_back(self, record: TokenRecord, now: datetime) -> bool:
        return self._settings.stale_token_fallback and record.remaining(now) > timedelta(0)

    @staticmethod
    def _fallback(
        record: TokenRecord, now: datetime, exc: TransientError
    ) -> AccessGrant:
        logger.warning(
            "Podio token refresh failed (%s); using the current token until it expires",
            exc,
            extra={"seconds_left": int(record.remaining(now).total_seconds())},
        )
        return AccessGrant(
            access_token=record.access_token,
            expires_at=record.expires_at,
            state=TokenState.REFRESH_FAILED,
        )


__all__ = ["AccessGrant", "TokenLifecycleManager", "TokenState"]
