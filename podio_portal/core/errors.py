"""
Error taxonomy shared by the provider clients, the token services and the
gateway routes.

Each error knows the HTTP status and JSON body the gateway answers with, so
the browser can tell "log in again" from "try later" from "the app is broken".
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PodioPortalError(Exception):
    """Base class for errors surfaced through the gateway."""

    error_code = "internal_error"
    status_code = 500
    needs_reauth = False
    needs_setup = False

    def __init__(self, message: str = "", *, details: Any = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.error_code)
        self.details = details

    @property
    def message(self) -> str:
        return str(self)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.error_code,
            "error_description": self.message,
        }
        if self.needs_reauth:
            payload["needs_reauth"] = True
        if self.needs_setup:
            payload["needs_setup"] = True
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ConfigurationError(PodioPortalError):
    """Required credentials or settings are missing."""

    error_code = "configuration_error"
    status_code = 500
    needs_setup = True


class TokenNotFoundError(PodioPortalError):
    """No Podio token has been stored yet."""

    error_code = "no_token"
    status_code = 404
    needs_setup = True


class InvalidStateError(PodioPortalError):
    """OAuth state is unknown, expired or already used."""

    error_code = "invalid_state"
    status_code = 400


class InvalidRequestError(PodioPortalError):
    """The request body or endpoint is not acceptable."""

    error_code = "invalid_request"
    status_code = 400


class MissingParametersError(InvalidRequestError):
    """A required request parameter is missing."""

    error_code = "missing_params"


class InvalidCredentialsError(PodioPortalError):
    """Customer username or password did not match a contact."""

    error_code = "invalid_credentials"
    status_code = 401


class ProviderError(PodioPortalError):
    """Base class for normalized token endpoint failures."""

    def __init__(
        self,
        message: str = "",
        *,
        status: Optional[int] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status = status


class InvalidGrantError(ProviderError):
    """The provider rejected the authorization code or refresh token."""

    error_code = "invalid_grant"
    status_code = 401
    needs_reauth = True


class RateLimitedError(ProviderError):
    """The provider answered 429."""

    error_code = "rate_limited"
    status_code = 429

    def __init__(
        self,
        message: str = "",
        *,
        retry_after: Optional[int] = None,
        status: Optional[int] = 429,
        details: Any = None,
    ) -> None:
        super().__init__(message, status=status, details=details)
        self.retry_after = retry_after

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return payload


class TransientError(ProviderError):
    """Network failure, timeout or provider 5xx."""

    error_code = "transient"
    status_code = 503


class MalformedResponseError(ProviderError):
    """The provider returned a body that is not the expected JSON."""

    error_code = "invalid_response"
    status_code = 502


class UpstreamError(ProviderError):
    """The Podio API answered a request with an unexpected status."""

    error_code = "upstream_error"
    status_code = 502

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.status is not None:
            payload["status"] = self.status
        return payload


class NeedsReauthError(PodioPortalError):
    """Stored credentials are dead; the user must run the authorization flow."""

    error_code = "needs_reauth"
    status_code = 401
    needs_reauth = True


__all__ = [
    "ConfigurationError",
    "InvalidCredentialsError",
    "InvalidGrantError",
    "InvalidRequestError",
    "InvalidStateError",
    "MalformedResponseError",
    "MissingParametersError",
    "NeedsReauthError",
    "PodioPortalError",
    "ProviderError",
    "RateLimitedError",
    "TokenNotFoundError",
    "TransientError",
    "UpstreamError",
]
