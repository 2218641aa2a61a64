try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from podio_portal.clients.podio_auth import PodioOAuthClient
from podio_portal.core.config import OAuthSettings, PodioSettings
from podio_portal.core.errors import (
    ConfigurationError,
    InvalidGrantError,
    MalformedResponseError,
    RateLimitedError,
    TransientError,
)

TOKEN_BODY = {
    "access_token": "new-access",
    "refresh_token": "new-refresh",
    "expires_in": 28800,
    "token_type": "bearer",
    "scope": "global:all",
}


def _client(handler, **podio_overrides) -> tuple[PodioOAuthClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    podio = PodioSettings(client_id="cid", client_secret="csecret", **podio_overrides)
    client = PodioOAuthClient(
        podio, OAuthSettings(), transport=httpx.MockTransport(recording)
    )
    return client, seen


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


def test_authorization_url_carries_client_and_state() -> None:
    client, _ = _client(lambda request: httpx.Response(200))
    url = client.build_authorization_url("abc", "https://portal.example.com/oauth-callback")

    parsed = urlparse(url)
    params = parse_qs(parsed.query)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://podio.com/oauth/authorize"
    assert params["client_id"] == ["cid"]
    assert params["state"] == ["abc"]
    assert params["response_type"] == ["code"]


def test_missing_credentials_is_a_configuration_error() -> None:
    client = PodioOAuthClient(PodioSettings(client_id="", client_secret=None), OAuthSettings())
    with pytest.raises(ConfigurationError) as excinfo:
        client.build_authorization_url("abc", "https://portal.example.com/cb")
    assert excinfo.value.needs_setup


@pytest.mark.anyio
async def test_refresh_posts_form_and_normalizes_grant() -> None:
    client, seen = _client(lambda request: httpx.Response(200, json=TOKEN_BODY))

    grant = await client.refresh_token("old-refresh")

    assert grant.access_token == "new-access"
    assert grant.refresh_token == "new-refresh"
    assert grant.expires_in == 28800
    form = _form(seen[0])
    assert str(seen[0].url) == "https://podio.com/oauth/token"
    assert form == {
        "grant_type": "refresh_token",
        "client_id": "cid",
        "client_secret": "csecret",
        "refresh_token": "old-refresh",
    }


@pytest.mark.anyio
async def test_exchange_and_client_credentials_send_their_grants() -> None:
    client, seen = _client(lambda request: httpx.Response(200, json=TOKEN_BODY))

    await client.exchange_authorization_code("the-code", "https://portal.example.com/cb")
    await client.client_credentials()

    exchange, app_grant = (_form(request) for request in seen)
    assert exchange["grant_type"] == "authorization_code"
    assert exchange["code"] == "the-code"
    assert exchange["redirect_uri"] == "https://portal.example.com/cb"
    assert app_grant["grant_type"] == "client_credentials"
    assert app_grant["scope"] == "global"


@pytest.mark.anyio
async def test_invalid_grant_body_maps_to_invalid_grant() -> None:
    client, _ = _client(
        lambda request: httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Refresh token revoked"}
        )
    )
    with pytest.raises(InvalidGrantError) as excinfo:
        await client.refresh_token("dead")
    assert excinfo.value.needs_reauth
    assert "revoked" in excinfo.value.message


@pytest.mark.anyio
async def test_rate_limit_carries_retry_after() -> None:
    client, _ = _client(
        lambda request: httpx.Response(429, headers={"Retry-After": "120"}, text="slow down")
    )
    with pytest.raises(RateLimitedError) as excinfo:
        await client.refresh_token("r")
    assert excinfo.value.retry_after == 120
    assert excinfo.value.to_payload()["retry_after"] == 120


@pytest.mark.anyio
async def test_server_error_is_transient() -> None:
    client, _ = _client(lambda request: httpx.Response(503, text="maintenance"))
    with pytest.raises(TransientError):
        await client.refresh_token("r")


@pytest.mark.anyio
async def test_network_failure_is_transient() -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = _client(boom)
    with pytest.raises(TransientError):
        await client.client_credentials()


@pytest.mark.anyio
async def test_html_success_body_is_malformed() -> None:
    client, _ = _client(
        lambda request: httpx.Response(
            200,
            headers={"content-type": "text/html"},
            text="<html><body>Podio login</body></html>",
        )
    )
    with pytest.raises(MalformedResponseError) as excinfo:
        await client.refresh_token("r")
    assert excinfo.value.to_payload()["error"] == "invalid_response"


@pytest.mark.anyio
async def test_html_without_content_type_is_sniffed() -> None:
    client, _ = _client(lambda request: httpx.Response(200, text="<!DOCTYPE html><html></html>"))
    with pytest.raises(MalformedResponseError):
        await client.refresh_token("r")


@pytest.mark.anyio
async def test_html_error_page_is_malformed_not_invalid_grant() -> None:
    client, _ = _client(
        lambda request: httpx.Response(
            400,
            headers={"content-type": "text/html"},
            text="<html>bad redirect_uri</html>",
        )
    )
    with pytest.raises(MalformedResponseError) as excinfo:
        await client.exchange_authorization_code("code", "https://portal.example.com/cb")
    assert excinfo.value.status == 400
    assert not excinfo.value.needs_reauth
    assert "needs_reauth" not in excinfo.value.to_payload()


@pytest.mark.anyio
async def test_json_without_access_token_is_malformed() -> None:
    client, _ = _client(lambda request: httpx.Response(200, json={"expires_in": 10}))
    with pytest.raises(MalformedResponseError):
        await client.refresh_token("r")
