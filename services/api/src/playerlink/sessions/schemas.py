"""Request/response schemas for session endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import AliasChoices, Field

from playerlink.identity.schemas import CamelModel


class ShortLoginRequest(CamelModel):
    """Log this device into the player owning a short code."""

    short_id: str | None = Field(
        None,
        max_length=32,
        validation_alias=AliasChoices("shortId", "short_id", "playerShortId", "player_short_id"),
    )


class DirectLoginRequest(CamelModel):
    """Explicit identity for clients that cannot rely on cookies."""

    player_id: str | None = Field(None, max_length=64)
    player_short_id: str | None = Field(None, max_length=32)
    device_id: str | None = Field(None, max_length=64)


class LoginResponse(CamelModel):
    ok: bool = True
    player_id: uuid.UUID
    player_short_id: str
    device_id: uuid.UUID
    session_id: uuid.UUID


class SessionLookupResponse(CamelModel):
    session_id: uuid.UUID
    player_id: uuid.UUID
    player_short_id: str
    device_id: uuid.UUID
    expires_at: datetime
