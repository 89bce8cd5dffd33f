"""
Where identity values come from.

A request is normalized into a RequestView once; each identity field is then
read from an ordered tuple of sources. Adding a transport (another header
spelling, a new cookie) means adding a source to a tuple, not touching the
resolver.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from starlette.datastructures import Headers

if TYPE_CHECKING:
    from starlette.requests import Request

# Canonical names written back to clients
PLAYER_ID_COOKIE = "player_id"
DEVICE_ID_COOKIE = "device_id"
SESSION_ID_COOKIE = "session_id"
PLAYER_SHORT_ID_COOKIE = "playerShortId"

PLAYER_ID_HEADER = "X-Player-Id"
PLAYER_SHORT_ID_HEADER = "X-Player-Short-Id"
DEVICE_ID_HEADER = "X-Device-Id"
SESSION_ID_HEADER = "X-Session-Id"

# Accepted spellings, in priority order
SESSION_ID_NAMES = (SESSION_ID_HEADER, "SessionId", "sessionId", "session_id")
DEVICE_ID_NAMES = (DEVICE_ID_HEADER, "DeviceId", "deviceId", "device_id")
PLAYER_ID_NAMES = (PLAYER_ID_HEADER, "PlayerId", "playerId", "player_id")
PLAYER_SHORT_ID_NAMES = (
    PLAYER_SHORT_ID_HEADER,
    "PlayerShortId",
    "playerShortId",
    "player_short_id",
    "shortId",
    "short_id",
)


def _is_json(content_type: str | None) -> bool:
    return content_type is not None and "application/json" in content_type.lower()


class RequestView:
    """Read-only view of the parts of a request that may carry identity."""

    def __init__(
        self,
        cookies: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> None:
        self.cookies: Mapping[str, str] = dict(cookies or {})
        self.headers = headers if isinstance(headers, Headers) else Headers(headers=dict(headers or {}))
        self.body = body

    @classmethod
    async def from_request(cls, request: Request) -> RequestView:
        """Build a view; malformed or non-object JSON bodies become an empty body."""
        body: Mapping[str, Any] | None = None
        if _is_json(request.headers.get("content-type")):
            raw = await request.body()
            if raw:
                try:
                    parsed = json.loads(raw)
                except (ValueError, UnicodeDecodeError):
                    parsed = None
                if isinstance(parsed, dict):
                    body = parsed
        return cls(cookies=request.cookies, headers=request.headers, body=body)


class IdentitySource(Protocol):
    def extract(self, view: RequestView) -> str | None: ...


def _clean(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class CookieSource:
    name: str

    def extract(self, view: RequestView) -> str | None:
        return _clean(view.cookies.get(self.name))


@dataclass(frozen=True)
class HeaderSource:
    names: tuple[str, ...]

    def extract(self, view: RequestView) -> str | None:
        for name in self.names:
            value = _clean(view.headers.get(name))
            if value is not None:
                return value
        return None


@dataclass(frozen=True)
class BodySource:
    """String-valued top-level key of a JSON object body."""

    keys: tuple[str, ...]

    def extract(self, view: RequestView) -> str | None:
        if view.body is None:
            return None
        for key in self.keys:
            value = _clean(view.body.get(key))
            if value is not None:
                return value
        return None


SESSION_ID_SOURCES: tuple[IdentitySource, ...] = (
    CookieSource(SESSION_ID_COOKIE),
    HeaderSource(SESSION_ID_NAMES),
)
DEVICE_ID_SOURCES: tuple[IdentitySource, ...] = (
    CookieSource(DEVICE_ID_COOKIE),
    HeaderSource(DEVICE_ID_NAMES),
)
PLAYER_ID_SOURCES: tuple[IdentitySource, ...] = (
    CookieSource(PLAYER_ID_COOKIE),
    HeaderSource(PLAYER_ID_NAMES),
)
PLAYER_SHORT_ID_SOURCES: tuple[IdentitySource, ...] = (
    CookieSource(PLAYER_SHORT_ID_COOKIE),
    HeaderSource(PLAYER_SHORT_ID_NAMES),
)

# Only player id and short id may come from a body; device and session ids never do
PLAYER_ID_BODY_SOURCES: tuple[IdentitySource, ...] = (BodySource(PLAYER_ID_NAMES),)
PLAYER_SHORT_ID_BODY_SOURCES: tuple[IdentitySource, ...] = (BodySource(PLAYER_SHORT_ID_NAMES),)


def first_text(sources: Iterable[IdentitySource], view: RequestView) -> str | None:
    for source in sources:
        value = source.extract(view)
        if value is not None:
            return value
    return None


def first_uuid(sources: Iterable[IdentitySource], view: RequestView) -> uuid.UUID | None:
    """First value that parses as a non-nil UUID; malformed values are skipped."""
    for source in sources:
        value = source.extract(view)
        if value is None:
            continue
        try:
            parsed = uuid.UUID(value)
        except ValueError:
            continue
        if parsed.int != 0:
            return parsed
    return None
