"""
Identity records handed to the browser.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PodioUser(BaseModel):
    """Authenticated Podio user, as reported by ``GET /user/status``."""

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None

    @classmethod
    def from_status(cls, payload: Dict[str, Any]) -> "PodioUser":
        user = payload.get("user") or {}
        profile = payload.get("profile") or {}
        email = user.get("mail")
        if not email and profile.get("mail"):
            email = profile["mail"][0]
        return cls(
            id=user.get("user_id") or profile.get("user_id"),
            name=profile.get("name"),
            email=email,
            username=user.get("username") or email,
        )


def item_field_value(item: Dict[str, Any], external_id: str) -> Any:
    """First value of the item field named ``external_id``, unwrapped by field type."""
    for field in item.get("fields") or []:
        if field.get("external_id") != external_id:
            continue
        values = field.get("values") or []
        if not values:
            return None
        first = values[0]
        kind = field.get("type")
        if kind in ("text", "email", "number"):
            return first.get("value")
        if kind == "image":
            return (first.get("value") or {}).get("file_id")
        if kind == "date":
            return first.get("start_date")
        return first
    return None


class CustomerUser(BaseModel):
    """Portal customer backed by an item in the Podio contacts app."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    # Podio file id of the customer's logo; resolve it through /image-proxy.
    logo_url: Optional[Union[int, str]] = Field(None, alias="logoUrl")

    @classmethod
    def from_contact(cls, item: Dict[str, Any]) -> "CustomerUser":
        return cls(
            id=item.get("item_id"),
            name=item_field_value(item, "name") or item_field_value(item, "title"),
            email=item_field_value(item, "email"),
            username=item_field_value(item, "customer-portal-username"),
            logo_url=item_field_value(item, "logo"),
        )


class SessionRecord(BaseModel):
    """Locally cached session; trusted only until ``expires_at``."""

    id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    logo_url: Optional[Union[int, str]] = None
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at > now


__all__ = ["CustomerUser", "PodioUser", "SessionRecord", "item_field_value"]
