"""
FastAPI routes for the Podio portal gateway.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from podio_portal.core.config import AppSettings
from podio_portal.core.errors import (
    InvalidRequestError,
    MalformedResponseError,
    MissingParametersError,
    NeedsReauthError,
    PodioPortalError,
    RateLimitedError,
)
from podio_portal.dependencies import (
    get_app_settings,
    get_customer_directory,
    get_oauth_state_store,
    get_podio_api_client,
    get_podio_oauth_client,
    get_token_lifecycle_manager,
)
from podio_portal.schemas import (
    ApiProxyRequest,
    HealthCheckRequest,
    ImageProxyRequest,
    OAuthCallbackPayload,
    UserAuthRequest,
    ValidateAccessRequest,
)
from podio_portal.utils.http import rate_limit_headers, try_parse_json

router = APIRouter()
logger = logging.getLogger(__name__)

SETUP_PAGE_PATH = "/podio-setup"


def portal_error_response(exc: PodioPortalError) -> JSONResponse:
    """Render a portal error as the structured JSON body the browser expects."""
    headers = {}
    if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, **exc.to_payload()},
        headers=headers or None,
    )


async def handle_portal_error(request: Request, exc: PodioPortalError) -> JSONResponse:
    logger.warning(
        "%s %s failed: %s (%s)",
        request.method,
        request.url.path,
        exc.error_code,
        exc.message,
    )
    return portal_error_response(exc)


def _redirect_uri(request: Request, settings: AppSettings) -> str:
    if settings.podio.redirect_uri:
        return str(settings.podio.redirect_uri)
    return str(request.url_for("oauth_callback_redirect"))


def _setup_page_url(settings: AppSettings, **params: str) -> Optional[str]:
    if not settings.frontend_base_url:
        return None
    base = str(settings.frontend_base_url).rstrip("/")
    return f"{base}{SETUP_PAGE_PATH}?{urlencode(params)}"


def _health_payload(settings: AppSettings) -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> dict:
    """Simple health endpoint for monitoring."""
    return _health_payload(settings)


@router.post("/health", status_code=HTTPStatus.OK)
async def healthcheck_detailed(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    payload: Optional[HealthCheckRequest] = None,
) -> dict:
    """Health check that can also report which Podio settings are present."""
    result = _health_payload(settings)
    if payload and payload.check_secrets:
        podio = settings.podio
        result["secrets"] = {
            "PODIO_CLIENT_ID": bool(podio.client_id),
            "PODIO_CLIENT_SECRET": bool(podio.client_secret),
            "PODIO_CONTACTS_APP_ID": bool(podio.contacts_app_id),
            "PODIO_CONTACTS_APP_TOKEN": bool(podio.contacts_app_token),
            "PODIO_PACKING_SPEC_APP_ID": bool(podio.packing_spec_app_id),
            "PODIO_PACKING_SPEC_APP_TOKEN": bool(podio.packing_spec_app_token),
            "TOKEN_ENCRYPTION_SECRET": bool(settings.security.token_encryption_secret),
        }
    return result


@router.get("/get-auth-url", status_code=HTTPStatus.OK)
async def get_auth_url(
    request: Request,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    oauth_client: Annotated[Any, Depends(get_podio_oauth_client)],
    state_store: Annotated[Any, Depends(get_oauth_state_store)],
) -> dict:
    """Issue a single-use state and return the Podio consent URL."""
    settings.podio.require_credentials()
    state = state_store.issue()
    auth_url = oauth_client.build_authorization_url(
        state.state, _redirect_uri(request, settings)
    )
    return {"success": True, "authUrl": auth_url, "state": state.state}


async def _complete_authorization(
    *,
    code: Optional[str],
    state: Optional[str],
    redirect_uri: str,
    oauth_client: Any,
    api_client: Any,
    state_store: Any,
    lifecycle: Any,
) -> dict:
    if not code or not state:
        raise MissingParametersError("Both code and state are required.")

    state_store.consume(state)
    grant = await oauth_client.exchange_authorization_code(code, redirect_uri)
    record = await lifecycle.store_authorization(grant)

    user = None
    try:
        user = await api_client.get_user_status(record.access_token)
    except PodioPortalError as exc:
        # The token is stored either way; identity is best effort.
        logger.warning("Podio user lookup failed after authorization: %s", exc.error_code)

    return {
        "success": True,
        "user": user.model_dump() if user else None,
        "token_info": {
            "expires_at": record.expires_at.isoformat(),
            "token_type": record.token_type,
            "scope": record.scope,
        },
    }


@router.post("/oauth-callback", status_code=HTTPStatus.OK)
async def oauth_callback(
    payload: OAuthCallbackPayload,
    request: Request,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    oauth_client: Annotated[Any, Depends(get_podio_oauth_client)],
    api_client: Annotated[Any, Depends(get_podio_api_client)],
    state_store: Annotated[Any, Depends(get_oauth_state_store)],
    lifecycle: Annotated[Any, Depends(get_token_lifecycle_manager)],
) -> dict:
    """Complete the authorization-code exchange posted by the front-end."""
    return await _complete_authorization(
        code=payload.code,
        state=payload.state,
        redirect_uri=_redirect_uri(request, settings),
        oauth_client=oauth_client,
        api_client=api_client,
        state_store=state_store,
        lifecycle=lifecycle,
    )


@router.get("/oauth-callback")
async def oauth_callback_redirect(
    request: Request,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    oauth_client: Annotated[Any, Depends(get_podio_oauth_client)],
    api_client: Annotated[Any, Depends(get_podio_api_client)],
    state_store: Annotated[Any, Depends(get_oauth_state_store)],
    lifecycle: Annotated[Any, Depends(get_token_lifecycle_manager)],
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    error_description: Optional[str] = Query(default=None),
) -> Response:
    """Handle Podio redirecting the browser straight to the gateway."""
    if error:
        logger.warning("Podio returned an OAuth error: %s", error)
        target = _setup_page_url(
            settings, error=error, error_description=error_description or ""
        )
        if target:
            return RedirectResponse(url=target, status_code=HTTPStatus.FOUND)
        return JSONResponse(
            status_code=HTTPStatus.BAD_REQUEST,
            content={
                "success": False,
                "error": error,
                "error_description": error_description,
            },
        )

    try:
        result = await _complete_authorization(
            code=code,
            state=state,
            redirect_uri=_redirect_uri(request, settings),
            oauth_client=oauth_client,
            api_client=api_client,
            state_store=state_store,
            lifecycle=lifecycle,
        )
    except PodioPortalError as exc:
        target = _setup_page_url(
            settings, error=exc.error_code, error_description=exc.message
        )
        if target:
            return RedirectResponse(url=target, status_code=HTTPStatus.FOUND)
        return portal_error_response(exc)

    target = _setup_page_url(settings, success="true")
    if target:
        return RedirectResponse(url=target, status_code=HTTPStatus.FOUND)
    return JSONResponse(content=result)


@router.post("/user-auth", status_code=HTTPStatus.OK)
async def user_auth(
    payload: UserAuthRequest,
    directory: Annotated[Any, Depends(get_customer_directory)],
) -> dict:
    """Sign a customer in with the portal credentials stored on their contact."""
    if not payload.username or not payload.password:
        raise MissingParametersError("Username and password are required.")
    user = await directory.authenticate(payload.username, payload.password)
    return {"success": True, "user": user.model_dump(by_alias=True)}


@router.post("/api-proxy")
async def api_proxy(
    payload: ApiProxyRequest,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    api_client: Annotated[Any, Depends(get_podio_api_client)],
    lifecycle: Annotated[Any, Depends(get_token_lifecycle_manager)],
) -> Response:
    """Forward one call to the Podio API and relay its answer."""
    try:
        api_client.build_url(payload.endpoint)
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from exc

    grant = await lifecycle.ensure_valid()
    upstream = await api_client.request(
        payload.options.method,
        payload.endpoint,
        access_token=grant.access_token,
        body=payload.options.body,
        app_token=settings.podio.app_token_for(payload.endpoint),
    )

    if upstream.status_code == HTTPStatus.UNAUTHORIZED:
        raise NeedsReauthError(
            "Podio rejected the stored access token.",
            details=try_parse_json(upstream),
        )

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
        headers=rate_limit_headers(upstream),
    )


@router.post("/token-refresh", status_code=HTTPStatus.OK)
async def token_refresh(
    lifecycle: Annotated[Any, Depends(get_token_lifecycle_manager)],
) -> dict:
    """Return a usable user token, renewing it first when near expiry."""
    grant = await lifecycle.ensure_valid(user_required=True)
    return {
        "success": True,
        "access_token": grant.access_token,
        "expires_at": grant.expires_at.isoformat(),
        "refreshed": grant.refreshed,
        "stale": grant.stale,
    }


@router.post("/disconnect", status_code=HTTPStatus.OK)
async def disconnect(
    lifecycle: Annotated[Any, Depends(get_token_lifecycle_manager)],
) -> dict:
    """Forget the stored Podio token."""
    removed = lifecycle.disconnect()
    return {"success": True, "disconnected": removed}


@router.post("/image-proxy", status_code=HTTPStatus.OK)
async def image_proxy(
    payload: ImageProxyRequest,
    api_client: Annotated[Any, Depends(get_podio_api_client)],
    lifecycle: Annotated[Any, Depends(get_token_lifecycle_manager)],
) -> dict:
    """Resolve a Podio file id to its download link."""
    if payload.file_id is None:
        raise InvalidRequestError("Podio file ID is required.")

    grant = await lifecycle.ensure_valid()
    file_data = await api_client.get_json(
        f"/file/{payload.file_id}", access_token=grant.access_token
    )
    if not isinstance(file_data, dict):
        raise MalformedResponseError("Unexpected file payload from Podio.")
    return {
        "url": file_data.get("link"),
        "mimetype": file_data.get("mimetype"),
        "filename": file_data.get("name"),
        "file_id": file_data.get("file_id"),
    }


@router.post("/validate-access", status_code=HTTPStatus.OK)
async def validate_access(
    payload: ValidateAccessRequest,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    api_client: Annotated[Any, Depends(get_podio_api_client)],
    lifecycle: Annotated[Any, Depends(get_token_lifecycle_manager)],
) -> dict:
    """Report whether the gateway's token can read a Podio app."""
    if payload.app_id is None:
        raise InvalidRequestError("App ID is required.")

    endpoint = f"/app/{payload.app_id}"
    grant = await lifecycle.ensure_valid()
    upstream = await api_client.request(
        "GET",
        endpoint,
        access_token=grant.access_token,
        app_token=settings.podio.app_token_for(endpoint),
    )
    has_access = upstream.is_success
    if not has_access:
        logger.info("No access to Podio app %s (status %s)", payload.app_id, upstream.status_code)
    return {
        "hasAccess": has_access,
        "appId": payload.app_id,
        "appDetails": try_parse_json(upstream) if has_access else None,
        "statusCode": upstream.status_code,
    }


__all__ = ["handle_portal_error", "portal_error_response", "router"]
