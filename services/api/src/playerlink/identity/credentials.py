"""Write identity credentials back to the client as cookies and canonical headers."""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from playerlink.config import get_settings
from playerlink.identity.sources import (
    DEVICE_ID_COOKIE,
    DEVICE_ID_HEADER,
    PLAYER_ID_COOKIE,
    PLAYER_ID_HEADER,
    PLAYER_SHORT_ID_COOKIE,
    PLAYER_SHORT_ID_HEADER,
    SESSION_ID_COOKIE,
    SESSION_ID_HEADER,
)

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response


def _is_https(request: Request) -> bool:
    return request.url.scheme == "https"


def _set_cookie(response: Response, request: Request, name: str, value: str, max_age: timedelta) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=int(max_age.total_seconds()),
        path="/",
        httponly=True,
        secure=_is_https(request),
        samesite="lax",
    )


def _set_header(response: Response, name: str, value: object | None) -> None:
    if value is None or not str(value).strip():
        if name in response.headers:
            del response.headers[name]
        return
    response.headers[name] = str(value)


def write_identity(
    response: Response,
    request: Request,
    *,
    player_id: uuid.UUID | None,
    player_short_id: str | None,
    device_id: uuid.UUID | None,
) -> None:
    """Emit player, short id and device as long-lived cookies plus X-* headers."""
    max_age = timedelta(days=get_settings().identity_cookie_max_age_days)
    if player_id is not None:
        _set_cookie(response, request, PLAYER_ID_COOKIE, str(player_id), max_age)
    if player_short_id:
        _set_cookie(response, request, PLAYER_SHORT_ID_COOKIE, player_short_id, max_age)
    if device_id is not None:
        _set_cookie(response, request, DEVICE_ID_COOKIE, str(device_id), max_age)

    _set_header(response, PLAYER_ID_HEADER, player_id)
    _set_header(response, PLAYER_SHORT_ID_HEADER, player_short_id)
    _set_header(response, DEVICE_ID_HEADER, device_id)


def write_session(response: Response, request: Request, session_id: uuid.UUID) -> None:
    """Emit the session cookie, living as long as the session TTL, and X-Session-Id."""
    ttl = timedelta(hours=get_settings().session_ttl_hours)
    _set_cookie(response, request, SESSION_ID_COOKIE, str(session_id), ttl)
    _set_header(response, SESSION_ID_HEADER, session_id)


def clear_session(response: Response, request: Request) -> None:
    """Delete the session cookie and drop X-Session-Id."""
    response.delete_cookie(
        key=SESSION_ID_COOKIE,
        path="/",
        httponly=True,
        secure=_is_https(request),
        samesite="lax",
    )
    _set_header(response, SESSION_ID_HEADER, None)
