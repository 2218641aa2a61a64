"""
Client-side session holder for portal front-ends.

An ``AuthContext`` is created per front-end and handed to whatever needs the
session; nothing here is module-global. The cached session is a convenience
for display and routing decisions only, the gateway stays authoritative.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, DefaultDict, List, Optional, Union

from podio_portal.clients.gateway import AuthGatewayClient, GatewayError
from podio_portal.core.errors import InvalidStateError, MissingParametersError
from podio_portal.models.oauth import utcnow
from podio_portal.models.session import SessionRecord
from podio_portal.services.token_store import RecordStore

logger = logging.getLogger(__name__)

REAUTH_REQUIRED = "reauth_required"
SESSION_EXPIRED = "session_expired"

Listener = Callable[[dict], Union[None, Awaitable[None]]]


class AuthContext:
    """Login, logout, session checks and reauthorization signalling."""

    SESSION_PK = "portal#session"
    SESSION_SK = "current"
    PENDING_STATE_SK = "pending_state"
    SESSION_DURATION = timedelta(hours=4)
    CHECK_INTERVAL_SECONDS = 60.0

    def __init__(
        self,
        gateway: AuthGatewayClient,
        storage: RecordStore,
        *,
        session_duration: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._gateway = gateway
        self._storage = storage
        self._duration = session_duration or self.SESSION_DURATION
        self._clock = clock
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._session: Optional[SessionRecord] = self._load_session()

    @property
    def session(self) -> Optional[SessionRecord]:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self.check_session()

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``event``; returns an unsubscribe callable."""
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return unsubscribe

    async def begin_login(self) -> str:
        """Fetch the Podio consent URL and remember its state for the callback."""
        data = await self._gateway.get_auth_url()
        self._storage.put_item(
            {
                "pk": self.SESSION_PK,
                "sk": self.PENDING_STATE_SK,
                "state": data["state"],
                "updated_at": self._clock().isoformat(),
            }
        )
        return data["authUrl"]

    async def login(
        self,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        code: Optional[str] = None,
        state: Optional[str] = None,
    ) -> SessionRecord:
        """Start a session from customer credentials or from the OAuth callback.

        Passing ``username``/``password`` signs a customer in against the
        contacts app; passing ``code``/``state`` completes the admin
        authorization begun by :meth:`begin_login`.
        """
        if username is not None or password is not None:
            if not username or not password:
                raise MissingParametersError("Username and password are required.")
            data = await self._gateway.user_auth(username=username, password=password)
            return self._start_session(data.get("user"))

        if not code or not state:
            raise MissingParametersError("Both code and state are required.")
        pending = self._storage.get_item(
            partition_key=self.SESSION_PK, sort_key=self.PENDING_STATE_SK
        )
        if not pending or pending.get("state") != state:
            raise InvalidStateError("OAuth state does not match the login in progress.")
        self._storage.delete_item(partition_key=self.SESSION_PK, sort_key=self.PENDING_STATE_SK)

        data = await self._gateway.oauth_callback(code=code, state=state)
        return self._start_session(data.get("user"))

    def logout(self) -> None:
        self._storage.delete_item(partition_key=self.SESSION_PK, sort_key=self.SESSION_SK)
        self._storage.delete_item(partition_key=self.SESSION_PK, sort_key=self.PENDING_STATE_SK)
        self._session = None

    def check_session(self) -> bool:
        """Local presence and expiry check; never calls the gateway."""
        return self._session is not None and self._session.is_valid(self._clock())

    def extend_session(self) -> Optional[SessionRecord]:
        if self._session is None:
            return None
        session = self._session.model_copy(
            update={"expires_at": self._clock() + self._duration}
        )
        self._save_session(session)
        return session

    async def force_reauthenticate(self) -> bool:
        """Ask the gateway for a fresh token; signal listeners when reauth is needed."""
        try:
            data = await self._gateway.token_refresh()
        except GatewayError as exc:
            if exc.needs_reauth or exc.needs_setup:
                await self._dispatch(
                    REAUTH_REQUIRED,
                    {"error": exc.error, "needs_setup": exc.needs_setup},
                )
                return False
            raise
        return bool(data.get("access_token"))

    async def monitor(
        self,
        *,
        interval: Optional[float] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """Check the session every ``interval`` seconds until ``stop`` is set."""
        stop = stop or asyncio.Event()
        delay = interval if interval is not None else self.CHECK_INTERVAL_SECONDS
        while not stop.is_set():
            if self._session is not None and not self.check_session():
                expired = self._session
                self.logout()
                await self._dispatch(SESSION_EXPIRED, {"user_id": expired.id})
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                continue

    def _start_session(self, user: Optional[dict]) -> SessionRecord:
        if not user:
            # The gateway stored the token but could not say whose it is.
            logger.warning("Gateway returned no user; starting an anonymous portal session")
            user = {}
        session = SessionRecord(
            id=user.get("id"),
            name=user.get("name"),
            email=user.get("email"),
            username=user.get("username"),
            logo_url=user.get("logoUrl"),
            expires_at=self._clock() + self._duration,
        )
        self._save_session(session)
        logger.info("Portal session started", extra={"user_id": session.id})
        return session

    async def _dispatch(self, event: str, payload: dict) -> None:
        for listener in list(self._listeners[event]):
            result = listener(payload)
            if asyncio.iscoroutine(result):
                await result

    def _load_session(self) -> Optional[SessionRecord]:
        item = self._storage.get_item(partition_key=self.SESSION_PK, sort_key=self.SESSION_SK)
        if not item:
            return None
        data: dict[str, Any] = {k: v for k, v in item.items() if k not in ("pk", "sk", "updated_at")}
        session = SessionRecord.model_validate(data)
        if session.expires_at.tzinfo is None:
            session = session.model_copy(
                update={"expires_at": session.expires_at.replace(tzinfo=timezone.utc)}
            )
        return session

    def _save_session(self, session: SessionRecord) -> None:
        item = session.model_dump(mode="json")
        item.update(
            {
                "pk": self.SESSION_PK,
                "sk": self.SESSION_SK,
                "updated_at": self._clock().isoformat(),
            }
        )
        self._storage.put_item(item)
        self._session = session


__all__ = ["AuthContext", "REAUTH_REQUIRED", "SESSION_EXPIRED"]
