"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

import logging
from functools import lru_cache
from typing import Union

from podio_portal.clients import (
    DynamoDBClient,
    PodioAPIClient,
    PodioOAuthClient,
    SQLiteStore,
)
from podio_portal.core.config import get_settings
from podio_portal.core.errors import ConfigurationError
from podio_portal.services import (
    CustomerDirectory,
    OAuthStateStore,
    TokenCipherService,
    TokenLifecycleManager,
    TokenStore,
)

logger = logging.getLogger(__name__)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_record_store() -> Union[SQLiteStore, DynamoDBClient]:
    """Provide the record store selected by ``STORAGE_BACKEND``."""
    settings = _settings()
    if settings.storage.backend == "dynamodb":
        return DynamoDBClient(settings.storage)
    return SQLiteStore(settings.storage.sqlite_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.podio.client_secret
    if not secret:
        raise ConfigurationError(
            "Set TOKEN_ENCRYPTION_SECRET (or PODIO_CLIENT_SECRET) to store Podio tokens."
        )
    if not settings.security.token_encryption_secret:
        logger.warning("TOKEN_ENCRYPTION_SECRET not set; deriving the key from PODIO_CLIENT_SECRET")
    return TokenCipherService(
        secret=secret,
        previous_secrets=settings.security.previous_secrets,
    )


@lru_cache()
def get_podio_oauth_client() -> PodioOAuthClient:
    """Create a singleton Podio OAuth client."""
    settings = _settings()
    return PodioOAuthClient(settings.podio, settings.oauth)


@lru_cache()
def get_podio_api_client() -> PodioAPIClient:
    """Create a singleton Podio REST client."""
    settings = _settings()
    return PodioAPIClient(settings.podio, settings.oauth)


def get_token_store() -> TokenStore:
    """Build the token store over the shared record store."""
    return TokenStore(get_record_store(), get_token_cipher_service())


def get_oauth_state_store() -> OAuthStateStore:
    """Build the OAuth state store over the shared record store."""
    return OAuthStateStore(get_record_store(), _settings().oauth)


def get_token_lifecycle_manager() -> TokenLifecycleManager:
    """Build the lifecycle manager used by every token-consuming route."""
    return TokenLifecycleManager(
        token_store=get_token_store(),
        oauth_client=get_podio_oauth_client(),
        oauth_settings=_settings().oauth,
    )


def get_customer_directory() -> CustomerDirectory:
    """Build the contacts-app lookup behind customer login."""
    return CustomerDirectory(
        _settings().podio, get_podio_oauth_client(), get_podio_api_client()
    )


__all__ = [
    "get_customer_directory",
    "get_oauth_state_store",
    "get_podio_api_client",
    "get_podio_oauth_client",
    "get_record_store",
    "get_token_cipher_service",
    "get_token_lifecycle_manager",
    "get_token_store",
]
