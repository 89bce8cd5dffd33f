"""Absolute links embedded in outgoing email."""

from urllib.parse import urlencode

from starlette.requests import Request

from playerlink.config import get_settings


def public_link(request: Request, path: str, **query: str) -> str:
    """Build an absolute URL on the configured public base, or the request's own base."""
    base = get_settings().public_base_url.rstrip("/") or str(request.base_url).rstrip("/")
    url = f"{base}/{path.lstrip('/')}"
    if query:
        url = f"{url}?{urlencode(query)}"
    return url
