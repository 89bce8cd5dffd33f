"""Session endpoints: login variants, logout and reverse lookup."""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from playerlink.config import get_settings
from playerlink.dependencies import get_db
from playerlink.directory import service as directory
from playerlink.errors import NotFoundError
from playerlink.identity.credentials import clear_session, write_identity, write_session
from playerlink.identity.dependencies import get_identity, get_player_identity
from playerlink.identity.resolver import Identity
from playerlink.identity.schemas import OkResponse
from playerlink.sessions import service as sessions
from playerlink.sessions.schemas import (
    DirectLoginRequest,
    LoginResponse,
    SessionLookupResponse,
    ShortLoginRequest,
)

router = APIRouter(prefix="/session", tags=["Sessions"])


def _session_ttl() -> timedelta:
    return timedelta(hours=get_settings().session_ttl_hours)


async def _login(
    db: AsyncSession,
    request: Request,
    response: Response,
    context: directory.DeviceContext,
) -> LoginResponse:
    """Replace the player's active session with one on this device and hand out credentials."""
    session_id = await sessions.create_or_replace(db, context.player_id, context.device_id, _session_ttl())
    write_identity(
        response,
        request,
        player_id=context.player_id,
        player_short_id=context.player_short_id,
        device_id=context.device_id,
    )
    write_session(response, request, session_id)
    return LoginResponse(
        player_id=context.player_id,
        player_short_id=context.player_short_id,
        device_id=context.device_id,
        session_id=session_id,
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    response: Response,
    identity: Identity = Depends(get_player_identity),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> LoginResponse:
    """Fresh session for a player/device pair the server already knows."""
    context = await directory.try_get(db, identity.player_id, identity.device_id)
    if context is None:
        raise HTTPException(status_code=400, detail="Unknown device. Call /device/init first.")
    return await _login(db, request, response, context)


@router.post("/login/short", response_model=LoginResponse)
async def login_short(
    request: Request,
    response: Response,
    body: ShortLoginRequest | None = None,
    identity: Identity = Depends(get_identity),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> LoginResponse:
    """Bind this device to the player owning a short code, then log in as that player."""
    short_id = (body.short_id if body else None) or identity.player_short_id
    target_player_id = await directory.try_get_player_id_by_short_id(db, short_id)
    if target_player_id is None:
        raise NotFoundError("short id")

    context = await directory.ensure(
        db,
        identity.player_id,
        identity.device_id,
        short_id_length=get_settings().short_id_length,
    )
    bound = await directory.bind_device(db, context, target_player_id)
    return await _login(db, request, response, bound)


@router.post("/login/direct", response_model=LoginResponse)
async def login_direct(
    request: Request,
    response: Response,
    body: DirectLoginRequest | None = None,
    identity: Identity = Depends(get_identity),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> LoginResponse:
    """Log in as an explicitly named player, optionally on an explicitly named device."""
    if identity.player_id is None:
        raise HTTPException(status_code=400, detail="Unknown player.")

    device_hint = directory.coerce_uuid(body.device_id if body else None) or identity.device_id
    context = await directory.ensure(
        db,
        identity.player_id,
        device_hint,
        short_id_length=get_settings().short_id_length,
    )
    if context.player_id != identity.player_id:
        context = await directory.bind_device(db, context, identity.player_id)
    return await _login(db, request, response, context)


@router.post("/logout", response_model=OkResponse)
async def logout(
    request: Request,
    response: Response,
    identity: Identity = Depends(get_identity),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> OkResponse:
    """Revoke the caller's session if it is still the active one. Always succeeds."""
    if identity.player_id is not None and identity.session_id is not None:
        await sessions.revoke_if_active(db, identity.player_id, identity.session_id)
    clear_session(response, request)
    return OkResponse()


@router.get("/lookup/{session_id}", response_model=SessionLookupResponse)
async def lookup_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> SessionLookupResponse:
    """Which player and device an active session belongs to."""
    found = await sessions.try_get(db, session_id, extend=False)
    if found is None:
        raise NotFoundError("session")
    return SessionLookupResponse(
        session_id=found.session_id,
        player_id=found.player_id,
        player_short_id=found.player_short_id,
        device_id=found.device_id,
        expires_at=found.expires_at,
    )
