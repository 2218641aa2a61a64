"""
Application configuration models and helpers.

Centralizes settings management so the gateway routes, the token lifecycle
services and the operator scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
import re
from typing import Literal, Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from podio_portal.core.errors import ConfigurationError


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()

_APP_PATH_PATTERN = re.compile(r"/app/(\d+)(?:/|$)")


class PodioSettings(BaseSettings):
    """Credentials and endpoints for the Podio OAuth provider and REST API."""

    model_config = SettingsConfigDict(env_prefix="PODIO_", extra="ignore")

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None,
        description=(
            "Callback URL registered with Podio. Derived from the request origin "
            "when omitted."
        ),
    )
    authorize_url: str = "https://podio.com/oauth/authorize"
    token_url: str = "https://podio.com/oauth/token"
    api_base_url: str = "https://api.podio.com"
    client_credentials_scope: str = "global"
    packing_spec_app_id: Optional[str] = None
    packing_spec_app_token: Optional[str] = None
    contacts_app_id: Optional[str] = None
    contacts_app_token: Optional[str] = None

    @field_validator("client_id", "client_secret", mode="before")
    @classmethod
    def _strip_credentials(cls, value: Optional[str]) -> Optional[str]:
        """Treat blank credentials as missing."""
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def require_credentials(self) -> tuple[str, str]:
        """Return ``(client_id, client_secret)`` or raise ``ConfigurationError``."""
        if not self.has_credentials:
            missing = [
                name
                for name, value in (
                    ("PODIO_CLIENT_ID", self.client_id),
                    ("PODIO_CLIENT_SECRET", self.client_secret),
                )
                if not value
            ]
            raise ConfigurationError(
                f"Podio client credentials not configured: missing {', '.join(missing)}."
            )
        return self.client_id, self.client_secret  # type: ignore[return-value]

    def app_tokens(self) -> dict[str, str]:
        """Map known Podio app ids to their app-scoped tokens."""
        tokens: dict[str, str] = {}
        if self.packing_spec_app_id and self.packing_spec_app_token:
            tokens[str(self.packing_spec_app_id)] = self.packing_spec_app_token
        if self.contacts_app_id and self.contacts_app_token:
            tokens[str(self.contacts_app_id)] = self.contacts_app_token
        return tokens

    def app_token_for(self, endpoint: str) -> Optional[str]:
        """Select the app token whose app id appears in ``endpoint``'s path."""
        match = _APP_PATH_PATTERN.search(endpoint.split("?", 1)[0])
        if not match:
            return None
        return self.app_tokens().get(match.group(1))


class OAuthSettings(BaseSettings):
    """Token lifecycle tuning."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_", extra="ignore")

    state_ttl_seconds: int = 600
    refresh_buffer_seconds: int = 300
    refresh_timeout_seconds: float = 10.0
    request_timeout_seconds: float = 30.0
    client_credentials_fallback: bool = Field(
        True,
        description="Acquire an app-level token when none is stored.",
    )
    stale_token_fallback: bool = Field(
        True,
        description=(
            "Keep serving a still-unexpired token when a refresh fails transiently."
        ),
    )


class StorageSettings(BaseSettings):
    """Where the token and OAuth state records live."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore")

    backend: Literal["sqlite", "dynamodb"] = "sqlite"
    sqlite_path: str = "data/podio_portal.db"
    dynamodb_table_name: Optional[str] = None
    aws_region: str = "us-east-1"


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    token_encryption_secret: Optional[str] = Field(
        None,
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    previous_token_encryption_secrets: str = Field(
        "",
        description="Comma-separated retired secrets still accepted for decryption.",
    )
    cors_allow_origins: str = "*"

    @property
    def previous_secrets(self) -> tuple[str, ...]:
        return tuple(
            secret.strip()
            for secret in self.previous_token_encryption_secrets.split(",")
            if secret.strip()
        )

    @property
    def allowed_origins(self) -> list[str]:
        return [
            origin.strip()
            for origin in self.cors_allow_origins.split(",")
            if origin.strip()
        ]


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    podio: PodioSettings = Field(default_factory=PodioSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "OAuthSettings",
    "PodioSettings",
    "SecuritySettings",
    "StorageSettings",
    "get_settings",
]
