"""
Domain models for OAuth token persistence.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenGrant(BaseModel):
    """Normalized payload returned by the Podio token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int
    token_type: str = "bearer"
    scope: Optional[str] = None

    def expires_at(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.expires_in)


class TokenRecord(BaseModel):
    """The current Podio token set for this deployment."""

    token_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    scope: Optional[str] = None
    token_type: str = "bearer"
    grant_type: str = Field(
        "authorization_code",
        description="Grant that produced the token; decides how it is renewed.",
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_grant(
        cls, grant: TokenGrant, *, grant_type: str, now: datetime
    ) -> "TokenRecord":
        return cls(
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            expires_at=grant.expires_at(now),
            scope=grant.scope,
            token_type=grant.token_type or "bearer",
            grant_type=grant_type,
            created_at=now,
            updated_at=now,
        )

    def renewed(self, grant: TokenGrant, *, now: datetime) -> "TokenRecord":
        """Return a copy updated from a refresh, keeping identity."""
        return self.model_copy(
            update={
                "access_token": grant.access_token,
                # Podio may omit a new refresh token; keep the old one then.
                "refresh_token": grant.refresh_token or self.refresh_token,
                "expires_at": grant.expires_at(now),
                "scope": grant.scope or self.scope,
                "token_type": grant.token_type or self.token_type,
                "updated_at": now,
            }
        )

    def remaining(self, now: datetime) -> timedelta:
        return self.expires_at - now


class OAuthState(BaseModel):
    """Anti-CSRF nonce issued before redirecting to the consent screen."""

    state: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


__all__ = ["OAuthState", "TokenGrant", "TokenRecord", "utcnow"]
