"""HTTP helpers for reading provider responses without trusting their content type."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import httpx

from podio_portal.core.errors import MalformedResponseError

RATE_LIMIT_HEADERS = (
    "Retry-After",
    "X-Rate-Limit-Limit",
    "X-Rate-Limit-Remaining",
    "X-Rate-Limit-Reset",
)


def looks_like_html(response: httpx.Response) -> bool:
    """Podio answers misconfigured requests with an HTML page instead of JSON."""
    content_type = response.headers.get("content-type", "").lower()
    if "text/html" in content_type:
        return True
    return response.content[:64].lstrip().startswith(b"<")


def parse_json_body(response: httpx.Response) -> Any:
    """Decode the body as JSON or raise ``MalformedResponseError``."""
    if looks_like_html(response):
        raise MalformedResponseError(
            "Provider returned HTML where JSON was expected.",
            status=response.status_code,
        )
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedResponseError(
            "Provider returned a body that is not valid JSON.",
            status=response.status_code,
        ) from exc


def try_parse_json(response: httpx.Response) -> Optional[Any]:
    """Decode the body as JSON when possible; error bodies are often plain text."""
    try:
        return parse_json_body(response)
    except MalformedResponseError:
        return None


def retry_after_seconds(response: httpx.Response) -> Optional[int]:
    """Read ``Retry-After`` as delta-seconds or an HTTP date."""
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    raw = raw.strip()
    if raw.isdigit():
        return int(raw)
    try:
        moment = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = (moment - datetime.now(timezone.utc)).total_seconds()
    return max(int(delta), 0)


def rate_limit_headers(response: httpx.Response) -> dict[str, str]:
    """Subset of provider headers worth relaying to the browser."""
    return {
        name: response.headers[name]
        for name in RATE_LIMIT_HEADERS
        if name in response.headers
    }


__all__ = [
    "looks_like_html",
    "parse_json_body",
    "rate_limit_headers",
    "retry_after_seconds",
    "try_parse_json",
]
