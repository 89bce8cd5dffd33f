"""Request identity resolution. Never writes to the store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from playerlink.directory import service as directory
from playerlink.errors import MissingIdentityError
from playerlink.identity.sources import (
    DEVICE_ID_SOURCES,
    PLAYER_ID_BODY_SOURCES,
    PLAYER_ID_SOURCES,
    PLAYER_SHORT_ID_BODY_SOURCES,
    PLAYER_SHORT_ID_SOURCES,
    SESSION_ID_SOURCES,
    RequestView,
    first_text,
    first_uuid,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class Identity:
    """Best-effort identity of a request. Any field may be None unless required."""

    player_id: uuid.UUID | None = None
    player_short_id: str | None = None
    device_id: uuid.UUID | None = None
    session_id: uuid.UUID | None = None


async def resolve(
    view: RequestView,
    db: AsyncSession,
    *,
    require_player_id: bool = False,
    require_session_id: bool = False,
    require_device_id: bool = False,
) -> Identity:
    """
    Resolve the request's identity.

    Precedence per field: cookie, then header. Only when no transport-level
    player id exists is the JSON body consulted for a player id or short id.
    A missing short id is looked up from the player/device pair, and a
    missing player id from the short id.

    Raises:
        MissingIdentityError: If a required field is still unknown.
    """
    session_id = first_uuid(SESSION_ID_SOURCES, view)
    device_id = first_uuid(DEVICE_ID_SOURCES, view)
    player_id = first_uuid(PLAYER_ID_SOURCES, view)
    short_id = first_text(PLAYER_SHORT_ID_SOURCES, view)

    if player_id is None:
        player_id = first_uuid(PLAYER_ID_BODY_SOURCES, view)
        if short_id is None:
            short_id = first_text(PLAYER_SHORT_ID_BODY_SOURCES, view)

    if short_id is None and (player_id is not None or device_id is not None):
        context = await directory.try_get(db, player_id, device_id)
        if context is not None:
            short_id = context.player_short_id

    if player_id is None and short_id is not None:
        player_id = await directory.try_get_player_id_by_short_id(db, short_id)

    if require_player_id and player_id is None:
        raise MissingIdentityError("player_id")
    if require_session_id and session_id is None:
        raise MissingIdentityError("session_id")
    if require_device_id and device_id is None:
        raise MissingIdentityError("device_id")

    return Identity(
        player_id=player_id,
        player_short_id=short_id,
        device_id=device_id,
        session_id=session_id,
    )
