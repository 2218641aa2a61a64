"""Public schema exports."""

from .auth import (
    ApiProxyOptions,
    ApiProxyRequest,
    HealthCheckRequest,
    ImageProxyRequest,
    OAuthCallbackPayload,
    UserAuthRequest,
    ValidateAccessRequest,
)

__all__ = [
    "ApiProxyOptions",
    "ApiProxyRequest",
    "HealthCheckRequest",
    "ImageProxyRequest",
    "OAuthCallbackPayload",
    "UserAuthRequest",
    "ValidateAccessRequest",
]
