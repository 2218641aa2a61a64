"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_customer_directory,
    get_oauth_state_store,
    get_podio_api_client,
    get_podio_oauth_client,
    get_record_store,
    get_token_cipher_service,
    get_token_lifecycle_manager,
    get_token_store,
)
from .config import get_app_settings

__all__ = [
    "get_app_settings",
    "get_customer_directory",
    "get_oauth_state_store",
    "get_podio_api_client",
    "get_podio_oauth_client",
    "get_record_store",
    "get_token_cipher_service",
    "get_token_lifecycle_manager",
    "get_token_store",
]
