"""Service layer exports."""

from .auth_context import REAUTH_REQUIRED, SESSION_EXPIRED, AuthContext
from .customer_auth import CustomerDirectory
from .oauth_state import OAuthStateStore
from .token_cipher import TokenCipherService
from .token_lifecycle import AccessGrant, TokenLifecycleManager, TokenState
from .token_store import RecordStore, TokenStore

__all__ = [
    "AccessGrant",
    "AuthContext",
    "CustomerDirectory",
    "OAuthStateStore",
    "REAUTH_REQUIRED",
    "RecordStore",
    "SESSION_EXPIRED",
    "TokenCipherService",
    "TokenLifecycleManager",
    "TokenState",
    "TokenStore",
]
