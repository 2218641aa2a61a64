"""
Thin wrapper around the Podio REST API used by the gateway.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from podio_portal.core.config import OAuthSettings, PodioSettings
from podio_portal.core.errors import (
    InvalidGrantError,
    MalformedResponseError,
    RateLimitedError,
    TransientError,
    UpstreamError,
)
from podio_portal.models.session import PodioUser
from podio_portal.utils.http import parse_json_body, retry_after_seconds

logger = logging.getLogger(__name__)

_BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class PodioAPIClient:
    """Forward authenticated requests to ``api.podio.com``."""

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

    def build_url(self, endpoint: str) -> str:
        """Resolve a relative API path against the configured base URL."""
        if "://" in endpoint or endpoint.startswith("//"):
            raise ValueError("Endpoint must be a path relative to the Podio API.")
        normalized = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        return f"{self._podio.api_base_url.rstrip('/')}{normalized}"

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        access_token: str,
        body: Any = None,
        app_token: Optional[str] = None,
    ) -> httpx.Response:
        """Send one request and hand back the raw provider response."""
        method = method.upper()
        url = self.build_url(endpoint)
        headers = {
            "Authorization": f"OAuth2 {access_token}",
            "Accept": "application/json",
        }
        if app_token:
            headers["X-Podio-App"] = app_token

        content: Optional[bytes] = None
        if body is not None and method in _BODY_METHODS:
            headers["Content-Type"] = "application/json"
            if isinstance(body, (bytes, str)):
                content = body.encode("utf-8") if isinstance(body, str) else body
            else:
                content = json.dumps(body).encode("utf-8")

        logger.info("Calling Podio API: %s %s", method, url)
        try:
            async with httpx.AsyncClient(
                timeout=self._oauth.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method, url, headers=headers, content=content
                )
        except httpx.TimeoutException as exc:
            raise TransientError(f"Podio API request timed out: {method} {endpoint}") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"Could not reach the Podio API: {exc}") from exc

        logger.info("Podio API response status: %s", response.status_code)
        return response

    async def get_json(
        self,
        endpoint: str,
        *,
        access_token: str,
        app_token: Optional[str] = None,
    ) -> Any:
        return await self.request_json(
            "GET", endpoint, access_token=access_token, app_token=app_token
        )

    async def request_json(
        self,
        method: str,
        endpoint: str,
        *,
        access_token: str,
        body: Any = None,
        app_token: Optional[str] = None,
    ) -> Any:
        """Send a request and decode its JSON, mapping failures to portal errors."""
        response = await self.request(
            method, endpoint, access_token=access_token, body=body, app_token=app_token
        )
        if response.status_code == 429:
            raise RateLimitedError(
                "Podio API rate limit exceeded.",
                retry_after=retry_after_seconds(response),
            )
        if response.status_code == 401:
            raise InvalidGrantError(
                "Podio rejected the access token.", status=response.status_code
            )
        if response.status_code >= 500:
            raise TransientError(
                f"Podio API failed with status {response.status_code}.",
                status=response.status_code,
            )
        if not response.is_success:
            raise UpstreamError(
                f"Podio API answered {response.status_code} for {endpoint}.",
                status=response.status_code,
            )
        return parse_json_body(response)

    async def get_user_status(self, access_token: str) -> PodioUser:
        """Look up the user the access token belongs to."""
        payload = await self.get_json("/user/status", access_token=access_token)
        if not isinstance(payload, dict):
            raise MalformedResponseError("Unexpected user status payload from Podio.")
        try:
            return PodioUser.from_status(payload)
        except ValidationError as exc:
            raise MalformedResponseError("Podio user status carries no user id.") from exc


__all__ = ["PodioAPIClient"]
