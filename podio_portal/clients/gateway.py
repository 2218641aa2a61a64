"""
Async client for the portal gateway, used by front-end shells and scripts.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


class GatewayError(Exception):
    """Structured error body returned by the gateway."""

    def __init__(self, status_code: int, payload: Dict[str, Any]) -> None:
        self.status_code = status_code
        self.payload = payload
        self.error = payload.get("error") or "unknown_error"
        super().__init__(payload.get("error_description") or self.error)

    @property
    def needs_reauth(self) -> bool:
        return bool(self.payload.get("needs_reauth"))

    @property
    def needs_setup(self) -> bool:
        return bool(self.payload.get("needs_setup"))

    @property
    def retry_after(self) -> Optional[int]:
        return self.payload.get("retry_after")


class AuthGatewayClient:
    """Call the gateway routes and raise ``GatewayError`` on structured failures."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def get_auth_url(self) -> Dict[str, Any]:
        return await self._call("GET", "/get-auth-url")

    async def oauth_callback(self, *, code: str, state: str) -> Dict[str, Any]:
        return await self._call("POST", "/oauth-callback", json={"code": code, "state": state})

    async def user_auth(self, *, username: str, password: str) -> Dict[str, Any]:
        return await self._call(
            "POST", "/user-auth", json={"username": username, "password": password}
        )

    async def token_refresh(self) -> Dict[str, Any]:
        return await self._call("POST", "/token-refresh")

    async def api_proxy(
        self, endpoint: str, *, method: str = "GET", body: Any = None
    ) -> httpx.Response:
        """Relay a Podio call; the provider's status and body come back untouched."""
        payload = {"endpoint": endpoint, "options": {"method": method, "body": body}}
        response = await self._send("POST", "/api-proxy", json=payload)
        if response.status_code == 401:
            data = _json_or_empty(response)
            if data.get("needs_reauth"):
                raise GatewayError(response.status_code, data)
        return response

    async def disconnect(self) -> Dict[str, Any]:
        return await self._call("POST", "/disconnect")

    async def _call(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self._send(method, path, **kwargs)
        data = _json_or_empty(response)
        if response.is_error or data.get("success") is False:
            raise GatewayError(response.status_code, data)
        return data

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            return await client.request(method, path, **kwargs)


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


__all__ = ["AuthGatewayClient", "GatewayError"]
