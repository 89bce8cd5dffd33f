"""
Email verification state machine.

A player has at most one pending verification; starting a new one
supersedes the previous one. Confirmation is a single transaction holding
the pending row's lock: it either sets the player's email and verified
timestamp and deletes the row, or deletes the row and reports why not.
"""

from __future__ import annotations

import enum
import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError

from playerlink.database import atomic
from playerlink.db.models import EmailVerification, Player
from playerlink.directory.service import normalize_email
from playerlink.errors import NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

DEFAULT_VERIFICATION_TTL = timedelta(hours=24)


class VerificationResult(enum.StrEnum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EMAIL_ALREADY_TAKEN = "email_already_taken"


@dataclass(frozen=True)
class PendingVerification:
    """A freshly issued verification. The token is only ever sent to the address."""

    token: str
    email: str
    expires_at: datetime


def hash_verification_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def create_verification(
    db: AsyncSession,
    player_id: uuid.UUID,
    email: str,
    ttl: timedelta = DEFAULT_VERIFICATION_TTL,
) -> PendingVerification:
    """
    Issue a verification for email, superseding the player's previous one.

    Raises:
        ValueError: If the email is blank.
        NotFoundError: If the player no longer exists.
    """
    normalized = normalize_email(email)
    if not normalized:
        msg = "Email cannot be empty"
        raise ValueError(msg)

    now = datetime.now(timezone.utc)
    token = secrets.token_urlsafe(32)
    expires_at = now + ttl

    async with atomic(db):
        locked = await db.execute(select(Player.player_id).where(Player.player_id == player_id).with_for_update())
        if locked.scalar_one_or_none() is None:
            raise NotFoundError("player", player_id)

        await db.execute(
            delete(EmailVerification)
            .where(EmailVerification.player_id == player_id)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            insert(EmailVerification).values(
                verification_id=uuid.uuid4(),
                player_id=player_id,
                email=normalized,
                token_hash=hash_verification_token(token),
                expires_at=expires_at,
                created_at=now,
            )
        )

    logger.info("email_verification_created", player_id=str(player_id), expires_at=expires_at.isoformat())
    return PendingVerification(token=token, email=normalized, expires_at=expires_at)


async def _delete_by_hash(db: AsyncSession, token_hash: str) -> None:
    await db.execute(
        delete(EmailVerification)
        .where(EmailVerification.token_hash == token_hash)
        .execution_options(synchronize_session=False)
    )


async def confirm_verification(db: AsyncSession, token: str | None) -> VerificationResult:
    """Redeem a verification token."""
    if not token or not token.strip():
        return VerificationResult.NOT_FOUND

    token_hash = hash_verification_token(token.strip())
    now = datetime.now(timezone.utc)

    try:
        async with atomic(db):
            pending = await db.execute(
                select(EmailVerification.player_id, EmailVerification.email, EmailVerification.expires_at)
                .where(EmailVerification.token_hash == token_hash)
                .with_for_update()
            )
            row = pending.one_or_none()
            if row is None:
                return VerificationResult.NOT_FOUND

            if row.expires_at <= now:
                await _delete_by_hash(db, token_hash)
                result = VerificationResult.EXPIRED
            else:
                owner = await db.execute(
                    select(Player.player_id).where(Player.email == row.email).with_for_update()
                )
                owner_id = owner.scalar_one_or_none()
                if owner_id is not None and owner_id != row.player_id:
                    await _delete_by_hash(db, token_hash)
                    result = VerificationResult.EMAIL_ALREADY_TAKEN
                else:
                    await db.execute(
                        update(Player)
                        .where(Player.player_id == row.player_id)
                        .values(email=row.email, email_verified_at=now, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    await _delete_by_hash(db, token_hash)
                    result = VerificationResult.SUCCESS
    except IntegrityError:
        # A different player claimed the address after our ownership check
        async with atomic(db):
            await _delete_by_hash(db, token_hash)
        result = VerificationResult.EMAIL_ALREADY_TAKEN

    logger.info("email_verification_confirmed", result=result.value)
    return result
