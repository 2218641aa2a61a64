"""Expose constructed client wrappers."""

from .dynamodb import DynamoDBClient
from .gateway import AuthGatewayClient, GatewayError
from .podio_api import PodioAPIClient
from .podio_auth import PodioOAuthClient
from .sqlite_store import SQLiteStore

__all__ = [
    "AuthGatewayClient",
    "DynamoDBClient",
    "GatewayError",
    "PodioAPIClient",
    "PodioOAuthClient",
    "SQLiteStore",
]
