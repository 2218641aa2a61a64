"""
Podio OAuth utilities.

Wraps the three token-endpoint grants used by the portal and normalizes every
provider failure into the portal error taxonomy. This module performs HTTP
only; persistence is the token services' job.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from fastapi import status

from podio_portal.core.config import OAuthSettings, PodioSettings
from podio_portal.core.errors import (
    InvalidGrantError,
    MalformedResponseError,
    RateLimitedError,
    TransientError,
)
from podio_portal.models.oauth import TokenGrant
from podio_portal.utils.http import (
    looks_like_html,
    parse_json_body,
    retry_after_seconds,
    try_parse_json,
)

logger = logging.getLogger(__name__)


class PodioOAuthClient:
    """Build Podio authorization URLs and call the token endpoint."""

    def __init__(
        self,
        podio_settings: PodioSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._podio = podio_settings
        self._oauth = oauth_settings
        self._transport = transport

    @property
    def token_url(self) -> str:
        return self._podio.token_url

    def build_authorization_url(self, state: str, redirect_uri: str) -> str:
        """Construct the Podio consent URL."""
        client_id, _ = self._podio.require_credentials()
        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "state": state,
        }
        return f"{self._podio.authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(
        self, code: str, redirect_uri: str
    ) -> TokenGrant:
        """Exchange an authorization code for a user-level token set."""
        client_id, client_secret = self._podio.require_credentials()
        payload = {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
        }
        return await self._request_token(payload)

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Mint a new access token from a stored refresh token."""
        client_id, client_secret = self._podio.require_credentials()
        payload = {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        }
        return await self._request_token(
            payload, timeout=self._oauth.refresh_timeout_seconds
        )

    async def client_credentials(self, scope: Optional[str] = None) -> TokenGrant:
        """Obtain an app-level token with no user context."""
        client_id, client_secret = self._podio.require_credentials()
        payload = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
            "scope": scope or self._podio.client_credentials_scope,
        }
        return await self._request_token(payload)

    async def _request_token(
        self, payload: Dict[str, str], *, timeout: Optional[float] = None
    ) -> TokenGrant:
        grant_type = payload["grant_type"]
        try:
            async with httpx.AsyncClient(
                timeout=timeout or self._oauth.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.token_url,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as exc:
            logger.warning("Podio token request timed out", extra={"grant_type": grant_type})
            raise TransientError(f"Podio token request timed out ({grant_type}).") from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Podio token request failed: %s", exc.__class__.__name__,
                extra={"grant_type": grant_type},
            )
            raise TransientError(f"Could not reach the Podio token endpoint: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise self._error_for(response, grant_type)

        token_payload = parse_json_body(response)
        if not isinstance(token_payload, dict) or not token_payload.get("access_token"):
            raise MalformedResponseError(
                "Incomplete token payload returned from Podio.",
                status=response.status_code,
            )

        try:
            expires_in = int(token_payload.get("expires_in") or 0)
        except (TypeError, ValueError) as exc:
            raise MalformedResponseError(
                "Token payload carries a non-numeric expires_in.",
                status=response.status_code,
            ) from exc

        logger.info("Podio token issued", extra={"grant_type": grant_type})
        return TokenGrant(
            access_token=token_payload["access_token"],
            refresh_token=token_payload.get("refresh_token"),
            expires_in=expires_in,
            token_type=token_payload.get("token_type") or "bearer",
            scope=token_payload.get("scope"),
        )

    @staticmethod
    def _error_for(response: httpx.Response, grant_type: str) -> Exception:
        code = response.status_code
        body: Any = try_parse_json(response)
        details = body if body is not None else None
        logger.warning(
            "Podio token endpoint returned %s", code, extra={"grant_type": grant_type}
        )

        if code == status.HTTP_429_TOO_MANY_REQUESTS:
            return RateLimitedError(
                "Podio API rate limit exceeded.",
                retry_after=retry_after_seconds(response),
                details=details,
            )
        if code >= 500:
            return TransientError(
                f"Podio token endpoint failed with status {code}.",
                status=code,
                details=details,
            )
        if looks_like_html(response):
            # An HTML page on a 4xx means a misconfigured app, not a dead grant.
            return MalformedResponseError(
                f"Podio token endpoint returned an HTML page (status {code}).",
                status=code,
            )

        description = None
        if isinstance(body, dict):
            description = body.get("error_description") or body.get("error")
        return InvalidGrantError(
            description or f"Podio rejected the {grant_type} grant (status {code}).",
            status=code,
            details=details,
        )


__all__ = ["PodioOAuthClient"]
