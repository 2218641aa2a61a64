"""Request bodies accepted by the gateway routes."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: Optional[str] = Field(None, description="Authorization code returned by Podio.")
    state: Optional[str] = Field(None, description="Opaque state issued by /get-auth-url.")


class ApiProxyOptions(BaseModel):
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    body: Any = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ApiProxyRequest(BaseModel):
    """Relative Podio API path plus the request to forward."""

    endpoint: str = Field(..., min_length=1, description="Path such as /item/123.")
    options: ApiProxyOptions = Field(default_factory=ApiProxyOptions)


class ImageProxyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: Optional[int] = Field(None, alias="fileId")


class ValidateAccessRequest(BaseModel):
    app_id: Optional[int] = None


class UserAuthRequest(BaseModel):
    """Customer portal credentials, checked against the Podio contacts app."""

    username: Optional[str] = None
    password: Optional[str] = None


class HealthCheckRequest(BaseModel):
    check_secrets: bool = False


__all__ = [
    "ApiProxyOptions",
    "ApiProxyRequest",
    "HealthCheckRequest",
    "ImageProxyRequest",
    "OAuthCallbackPayload",
    "UserAuthRequest",
    "ValidateAccessRequest",
]
