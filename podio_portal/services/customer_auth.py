"""
Customer login against the Podio contacts app.

Customers are contact items carrying a portal username and password. The
lookup runs under an app-level client-credentials token, so no admin
authorization is needed for customers to sign in.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any, Optional

from pydantic import ValidationError

from podio_portal.clients.podio_api import PodioAPIClient
from podio_portal.clients.podio_auth import PodioOAuthClient
from podio_portal.core.config import PodioSettings
from podio_portal.core.errors import (
    ConfigurationError,
    InvalidCredentialsError,
    MalformedResponseError,
)
from podio_portal.models.session import CustomerUser, item_field_value

logger = logging.getLogger(__name__)


class CustomerDirectory:
    """Find a contact by portal username and check its portal password."""

    USERNAME_FIELD = "customer-portal-username"
    PASSWORD_FIELD = "customer-portal-password"

    def __init__(
        self,
        podio_settings: PodioSettings,
        oauth_client: PodioOAuthClient,
        api_client: PodioAPIClient,
    ) -> None:
        self._podio = podio_settings
        self._oauth_client = oauth_client
        self._api_client = api_client

    async def authenticate(self, username: str, password: str) -> CustomerUser:
        app_id = self._podio.contacts_app_id
        if not app_id:
            raise ConfigurationError("Set PODIO_CONTACTS_APP_ID to enable customer login.")

        grant = await self._oauth_client.client_credentials()
        payload = await self._api_client.request_json(
            "POST",
            f"/item/app/{app_id}/filter/",
            access_token=grant.access_token,
            body={"filters": {self.USERNAME_FIELD: {"from": username, "to": username}}},
            app_token=self._podio.contacts_app_token,
        )
        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise MalformedResponseError("Unexpected contact search payload from Podio.")

        contact = self._matching_contact(items, username)
        stored = item_field_value(contact, self.PASSWORD_FIELD) if contact else None
        if not stored or not hmac.compare_digest(
            str(stored).encode("utf-8"), password.encode("utf-8")
        ):
            logger.info("Customer login rejected (%s candidate contacts)", len(items))
            raise InvalidCredentialsError("Unknown username or wrong password.")

        try:
            user = CustomerUser.from_contact(contact)
        except ValidationError as exc:
            raise MalformedResponseError("Contact item carries no item id.") from exc
        logger.info("Customer login accepted", extra={"item_id": user.id})
        return user

    def _matching_contact(self, items: list, username: str) -> Optional[dict[str, Any]]:
        for item in items:
            if isinstance(item, dict) and item_field_value(item, self.USERNAME_FIELD) == username:
                return item
        return None


__all__ = ["CustomerDirectory"]
