"""Email verification endpoints."""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from playerlink.config import get_settings
from playerlink.dependencies import get_db
from playerlink.email.service import get_email_service
from playerlink.identity.dependencies import require_active_session
from playerlink.identity.resolver import Identity
from playerlink.links import public_link
from playerlink.redis_client import get_redis, redis_enabled
from playerlink.verification.schemas import (
    VerificationConfirmResponse,
    VerificationStartRequest,
    VerificationStartResponse,
)
from playerlink.verification.service import (
    VerificationResult,
    confirm_verification,
    create_verification,
)

router = APIRouter(prefix="/email/verification", tags=["Email verification"])

_OUTCOMES: dict[VerificationResult, tuple[int, str]] = {
    VerificationResult.SUCCESS: (200, "Email verified successfully."),
    VerificationResult.NOT_FOUND: (410, "Verification link expired or already used."),
    VerificationResult.EXPIRED: (410, "Verification link expired."),
    VerificationResult.EMAIL_ALREADY_TAKEN: (409, "This email address is already in use by another player."),
}


@router.post("/start", response_model=VerificationStartResponse)
async def start_verification(
    body: VerificationStartRequest,
    request: Request,
    identity: Identity = Depends(require_active_session),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> VerificationStartResponse:
    """Mail a confirmation link for the address to the signed-in player."""
    settings = get_settings()
    player_id = identity.player_id
    if player_id is None:
        raise HTTPException(status_code=400, detail="Missing player id.")

    pending = await create_verification(
        db,
        player_id,
        body.email,
        timedelta(hours=settings.email_verification_ttl_hours),
    )
    link = public_link(request, "/email/verification/confirm", token=pending.token)

    email_service = get_email_service(get_redis() if redis_enabled() else None)
    await email_service.send_template(
        to=pending.email,
        template_name="verify_email",
        context={"link": link, "expires_at": pending.expires_at},
    )
    return VerificationStartResponse(expires_at_utc=pending.expires_at)


@router.get("/confirm", response_model=VerificationConfirmResponse)
async def confirm(
    token: str | None = None,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> JSONResponse:
    """Redeem a confirmation link."""
    if not token or not token.strip():
        raise HTTPException(status_code=400, detail="Invalid verification token.")

    result = await confirm_verification(db, token)
    status_code, detail = _OUTCOMES[result]
    payload = VerificationConfirmResponse(ok=result is VerificationResult.SUCCESS, result=result.value, detail=detail)
    return JSONResponse(status_code=status_code, content=payload.model_dump(by_alias=True))
