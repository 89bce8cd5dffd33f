"""Device endpoints: /device/init, magic-link transfer and /whoami."""

from __future__ import annotations

from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from playerlink.config import get_settings
from playerlink.dependencies import get_db, get_token_store
from playerlink.devices.schemas import TransferAcceptResponse, TransferStartRequest
from playerlink.directory import service as directory
from playerlink.email.service import get_email_service
from playerlink.errors import GoneError
from playerlink.identity.credentials import write_identity, write_session
from playerlink.identity.dependencies import get_identity
from playerlink.identity.resolver import Identity
from playerlink.identity.schemas import IdentityResponse, OkResponse, WhoAmIResponse
from playerlink.links import public_link
from playerlink.redis_client import get_redis, redis_enabled
from playerlink.sessions import service as sessions
from playerlink.transfer.token_store import TransferTokenStore

logger = structlog.get_logger()

router = APIRouter(tags=["Devices"])


def _remember(response: Response, request: Request, context: directory.DeviceContext) -> None:
    write_identity(
        response,
        request,
        player_id=context.player_id,
        player_short_id=context.player_short_id,
        device_id=context.device_id,
    )


@router.post("/device/init", response_model=IdentityResponse)
async def init_device(
    request: Request,
    response: Response,
    identity: Identity = Depends(get_identity),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> IdentityResponse:
    """Recognize the calling device, creating an anonymous player on first contact."""
    context = await directory.ensure(
        db,
        identity.player_id,
        identity.device_id,
        short_id_length=get_settings().short_id_length,
    )
    _remember(response, request, context)
    return IdentityResponse(
        player_id=context.player_id,
        player_short_id=context.player_short_id,
        device_id=context.device_id,
    )


@router.post("/device/transfer/start", response_model=OkResponse)
async def start_transfer(
    body: TransferStartRequest,
    request: Request,
    response: Response,
    identity: Identity = Depends(get_identity),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
    store: TransferTokenStore = Depends(get_token_store),  # noqa: B008
) -> OkResponse:
    """Claim the email for this player (merging if it is owned) and mail a one-time sign-in link."""
    settings = get_settings()
    context = await directory.ensure(
        db,
        identity.player_id,
        identity.device_id,
        short_id_length=settings.short_id_length,
    )
    context = await directory.attach_email(db, context, body.email)
    _remember(response, request, context)

    ttl = timedelta(minutes=settings.transfer_token_ttl_minutes)
    token = await store.create_token(context.player_id, ttl)
    link = public_link(request, "/device/transfer/accept", token=token)

    email_service = get_email_service(get_redis() if redis_enabled() else None)
    await email_service.send_template(
        to=body.email,
        template_name="magic_link",
        context={"link": link, "expires_minutes": settings.transfer_token_ttl_minutes},
    )
    return OkResponse()


@router.get("/device/transfer/accept", response_model=TransferAcceptResponse)
async def accept_transfer(
    request: Request,
    response: Response,
    token: str | None = None,
    identity: Identity = Depends(get_identity),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
    store: TransferTokenStore = Depends(get_token_store),  # noqa: B008
) -> TransferAcceptResponse:
    """Bind this browser to the link's player and make it the player's only active session."""
    if not token or not token.strip():
        raise HTTPException(status_code=400, detail="Missing token")

    target_player_id = await store.consume_token(token)
    if target_player_id is None:
        raise GoneError

    settings = get_settings()
    context = await directory.ensure(
        db,
        identity.player_id,
        identity.device_id,
        short_id_length=settings.short_id_length,
    )
    bound = await directory.bind_device(db, context, target_player_id)
    session_id = await sessions.create_or_replace(
        db,
        bound.player_id,
        bound.device_id,
        timedelta(hours=settings.session_ttl_hours),
    )

    _remember(response, request, bound)
    write_session(response, request, session_id)
    logger.info("device_transferred", player_id=str(bound.player_id), device_id=str(bound.device_id))
    return TransferAcceptResponse(
        player_id=bound.player_id,
        player_short_id=bound.player_short_id,
        device_id=bound.device_id,
        session_id=session_id,
    )


@router.get("/whoami", response_model=WhoAmIResponse)
async def whoami(identity: Identity = Depends(get_identity)) -> WhoAmIResponse:  # noqa: B008
    """Echo what the server can resolve about the caller. Never creates records."""
    return WhoAmIResponse(
        player_id=identity.player_id,
        player_short_id=identity.player_short_id,
        device_id=identity.device_id,
        session_id=identity.session_id,
    )
