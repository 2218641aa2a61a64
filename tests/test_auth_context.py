try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import json

import httpx
import pytest

from podio_portal.clients.gateway import AuthGatewayClient, GatewayError
from podio_portal.core.errors import InvalidStateError, MissingParametersError
from podio_portal.services.auth_context import (
    REAUTH_REQUIRED,
    SESSION_EXPIRED,
    AuthContext,
)

CALLBACK_BODY = {
    "success": True,
    "user": {"id": 42, "name": "Ada Lovelace", "email": "ada@example.com", "username": "ada"},
    "token_info": {"expires_at": "2024-05-01T20:00:00+00:00", "token_type": "bearer", "scope": None},
}


USER_AUTH_BODY = {
    "success": True,
    "user": {"id": 7001, "name": "Acme Foods", "email": "ops@acme.example", "username": "acme", "logoUrl": 991},
}

class FakeGateway:
    def __init__(self) -> None:
        self.responses: dict[str, httpx.Response] = {
            "/get-auth-url": httpx.Response(
                200,
                json={"success": True, "authUrl": "https://podio.com/oauth/authorize?state=s1", "state": "s1"},
            ),
            "/oauth-callback": httpx.Response(200, json=CALLBACK_BODY),
            "/user-auth": httpx.Response(200, json=USER_AUTH_BODY),
        }
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.calls.append((request.url.path, body))
        return self.responses[request.url.path]


def _context(record_store, clock, gateway: FakeGateway) -> AuthContext:
    client = AuthGatewayClient(
        "https://gateway.example.com", transport=httpx.MockTransport(gateway)
    )
    return AuthContext(client, record_store, clock=clock)


@pytest.mark.anyio
async def test_login_persists_session(record_store, clock) -> None:
    gateway = FakeGateway()
    context = _context(record_store, clock, gateway)

    auth_url = await context.begin_login()
    session = await context.login(code="c1", state="s1")

    assert auth_url.startswith("https://podio.com/oauth/authorize")
    assert gateway.calls[-1] == ("/oauth-callback", {"code": "c1", "state": "s1"})
    assert session.id == 42
    assert context.check_session() is True

    reloaded = _context(record_store, clock, gateway)
    assert reloaded.session == session


@pytest.mark.anyio
async def test_login_rejects_mismatched_state(record_store, clock) -> None:
    gateway = FakeGateway()
    context = _context(record_store, clock, gateway)
    await context.begin_login()

    with pytest.raises(InvalidStateError):
        await context.login(code="c1", state="other")

    assert [path for path, _ in gateway.calls] == ["/get-auth-url"]
    assert context.check_session() is False


@pytest.mark.anyio
async def test_failed_callback_raises_gateway_error(record_store, clock) -> None:
    gateway = FakeGateway()
    gateway.responses["/oauth-callback"] = httpx.Response(
        400, json={"success": False, "error": "invalid_state", "error_description": "replayed"}
    )
    context = _context(record_store, clock, gateway)
    await context.begin_login()

    with pytest.raises(GatewayError) as excinfo:
        await context.login(code="c1", state="s1")

    assert excinfo.value.error == "invalid_state"
    assert context.session is None


@pytest.mark.anyio
async def test_customer_login_uses_portal_credentials(record_store, clock) -> None:
    gateway = FakeGateway()
    context = _context(record_store, clock, gateway)

    session = await context.login(username="acme", password="s3cret")

    assert gateway.calls == [("/user-auth", {"username": "acme", "password": "s3cret"})]
    assert session.id == 7001
    assert session.name == "Acme Foods"
    assert session.logo_url == 991
    assert context.check_session() is True
    assert _context(record_store, clock, gateway).session == session


@pytest.mark.anyio
async def test_customer_login_rejection_keeps_session_empty(record_store, clock) -> None:
    gateway = FakeGateway()
    gateway.responses["/user-auth"] = httpx.Response(
        401, json={"success": False, "error": "invalid_credentials"}
    )
    context = _context(record_store, clock, gateway)

    with pytest.raises(GatewayError) as excinfo:
        await context.login(username="acme", password="wrong")

    assert excinfo.value.error == "invalid_credentials"
    assert context.session is None


@pytest.mark.anyio
async def test_customer_login_requires_password(record_store, clock) -> None:
    gateway = FakeGateway()
    context = _context(record_store, clock, gateway)

    with pytest.raises(MissingParametersError):
        await context.login(username="acme")

    assert gateway.calls == []


@pytest.mark.anyio
async def test_callback_without_user_starts_anonymous_session(record_store, clock) -> None:
    gateway = FakeGateway()
    gateway.responses["/oauth-callback"] = httpx.Response(200, json={**CALLBACK_BODY, "user": None})
    context = _context(record_store, clock, gateway)
    await context.begin_login()

    session = await context.login(code="c1", state="s1")

    assert session.id is None
    assert session.name is None
    assert context.check_session() is True


@pytest.mark.anyio
async def test_session_expires_and_can_be_extended(record_store, clock) -> None:
    context = _context(record_store, clock, FakeGateway())
    await context.begin_login()
    await context.login(code="c1", state="s1")

    clock.advance(hours=3)
    context.extend_session()
    clock.advance(hours=3)
    assert context.check_session() is True

    clock.advance(hours=2)
    assert context.check_session() is False


@pytest.mark.anyio
async def test_logout_clears_session(record_store, clock) -> None:
    gateway = FakeGateway()
    context = _context(record_store, clock, gateway)
    await context.begin_login()
    await context.login(code="c1", state="s1")

    context.logout()

    assert context.session is None
    assert _context(record_store, clock, gateway).session is None


@pytest.mark.anyio
async def test_force_reauthenticate_dispatches_event_on_needs_reauth(record_store, clock) -> None:
    gateway = FakeGateway()
    gateway.responses["/token-refresh"] = httpx.Response(
        401, json={"success": False, "error": "needs_reauth", "needs_reauth": True}
    )
    context = _context(record_store, clock, gateway)
    events: list[dict] = []
    context.subscribe(REAUTH_REQUIRED, events.append)

    assert await context.force_reauthenticate() is False
    assert events == [{"error": "needs_reauth", "needs_setup": False}]


@pytest.mark.anyio
async def test_force_reauthenticate_succeeds_with_fresh_token(record_store, clock) -> None:
    gateway = FakeGateway()
    gateway.responses["/token-refresh"] = httpx.Response(
        200,
        json={"success": True, "access_token": "A2", "expires_at": "2024-05-01T13:00:00+00:00", "refreshed": True},
    )
    context = _context(record_store, clock, gateway)
    events: list[dict] = []
    context.subscribe(REAUTH_REQUIRED, events.append)

    assert await context.force_reauthenticate() is True
    assert events == []


@pytest.mark.anyio
async def test_force_reauthenticate_reraises_transient_errors(record_store, clock) -> None:
    gateway = FakeGateway()
    gateway.responses["/token-refresh"] = httpx.Response(
        503, json={"success": False, "error": "transient"}
    )
    context = _context(record_store, clock, gateway)

    with pytest.raises(GatewayError) as excinfo:
        await context.force_reauthenticate()
    assert excinfo.value.status_code == 503


@pytest.mark.anyio
async def test_unsubscribe_stops_delivery(record_store, clock) -> None:
    gateway = FakeGateway()
    gateway.responses["/token-refresh"] = httpx.Response(
        404, json={"success": False, "error": "no_token", "needs_setup": True}
    )
    context = _context(record_store, clock, gateway)
    events: list[dict] = []
    unsubscribe = context.subscribe(REAUTH_REQUIRED, events.append)
    unsubscribe()

    assert await context.force_reauthenticate() is False
    assert events == []


@pytest.mark.anyio
async def test_monitor_dispatches_session_expired(record_store, clock) -> None:
    context = _context(record_store, clock, FakeGateway())
    await context.begin_login()
    await context.login(code="c1", state="s1")

    stop = asyncio.Event()
    expired: list[dict] = []

    async def on_expired(payload: dict) -> None:
        expired.append(payload)
        stop.set()

    context.subscribe(SESSION_EXPIRED, on_expired)
    clock.advance(hours=5)

    await asyncio.wait_for(context.monitor(interval=0.01, stop=stop), timeout=1)

    assert expired == [{"user_id": 42}]
    assert context.session is None
