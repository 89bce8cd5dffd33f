"""
Single-active-session manager.

Per player the lifecycle is: no session -> active -> (expired | revoked) ->
no session. create_or_replace revokes and inserts inside one transaction
while holding the player's row lock; the partial unique index
ix_sessions_player_active backs the invariant at the storage level.

Expired rows are revoked lazily the first time they are read; there is no
background sweep.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from playerlink.database import atomic
from playerlink.db.models import Device, Player, PlayerSession
from playerlink.directory.service import coerce_uuid
from playerlink.errors import NotFoundError, TransientStoreError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

DEFAULT_SESSION_TTL = timedelta(hours=8)


@dataclass(frozen=True)
class SessionLookup:
    """Owner of an active session."""

    session_id: uuid.UUID
    player_id: uuid.UUID
    device_id: uuid.UUID
    player_short_id: str
    expires_at: datetime


def _active(session_id: uuid.UUID):  # noqa: ANN202
    return (PlayerSession.session_id == session_id) & PlayerSession.revoked_at.is_(None)


async def create_or_replace(
    db: AsyncSession,
    player_id: uuid.UUID,
    device_id: uuid.UUID,
    ttl: timedelta = DEFAULT_SESSION_TTL,
) -> uuid.UUID:
    """
    Start a new session for the player on the device, revoking any other.

    Raises:
        NotFoundError: If the player is gone or the device is not bound to it.
        TransientStoreError: If a concurrent login won the race; retry from scratch.
    """
    now = datetime.now(timezone.utc)
    session_id = uuid.uuid4()

    try:
        async with atomic(db):
            locked = await db.execute(
                select(Player.player_id).where(Player.player_id == player_id).with_for_update()
            )
            if locked.scalar_one_or_none() is None:
                raise NotFoundError("player", player_id)

            owner = await db.execute(select(Device.player_id).where(Device.device_id == device_id))
            if owner.scalar_one_or_none() != player_id:
                raise NotFoundError("device", device_id)

            revoked = await db.execute(
                update(PlayerSession)
                .where(PlayerSession.player_id == player_id, PlayerSession.revoked_at.is_(None))
                .values(revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                insert(PlayerSession).values(
                    session_id=session_id,
                    player_id=player_id,
                    device_id=device_id,
                    created_at=now,
                    expires_at=now + ttl,
                    revoked_at=None,
                )
            )
    except IntegrityError as exc:
        # Only reachable when the store did not serialize on the player lock
        msg = "Concurrent login for the same player"
        raise TransientStoreError(msg) from exc

    logger.info(
        "session_created",
        player_id=str(player_id),
        device_id=str(device_id),
        session_id=str(session_id),
        replaced=revoked.rowcount,
    )
    return session_id


async def _expire(db: AsyncSession, session_id: uuid.UUID, now: datetime) -> None:
    async with atomic(db):
        await db.execute(
            update(PlayerSession)
            .where(_active(session_id))
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
    logger.info("session_expired", session_id=str(session_id))


async def _slide(
    db: AsyncSession,
    session_id: uuid.UUID,
    expires_at: datetime,
    now: datetime,
    ttl: timedelta,
) -> bool:
    """Push expiry to now + ttl, never backwards. False if the session was revoked meanwhile."""
    target = max(expires_at, now + ttl)
    if target == expires_at:
        return True
    async with atomic(db):
        result = await db.execute(
            update(PlayerSession)
            .where(_active(session_id))
            .values(expires_at=target)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount > 0


async def validate(
    db: AsyncSession,
    player_id: uuid.UUID | str | None,
    session_id: uuid.UUID | str | None,
    *,
    sliding: bool = True,
    ttl: timedelta = DEFAULT_SESSION_TTL,
) -> bool:
    """True iff the session exists, belongs to the player, is unrevoked and unexpired."""
    pid = coerce_uuid(player_id)
    sid = coerce_uuid(session_id)
    if pid is None or sid is None:
        return False

    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(PlayerSession.expires_at).where(_active(sid), PlayerSession.player_id == pid)
    )
    expires_at = result.scalar_one_or_none()
    if expires_at is None:
        return False

    if expires_at <= now:
        await _expire(db, sid, now)
        return False

    if sliding:
        return await _slide(db, sid, expires_at, now, ttl)
    return True


async def revoke_if_active(
    db: AsyncSession,
    player_id: uuid.UUID | str | None,
    session_id: uuid.UUID | str | None,
) -> bool:
    """Revoke the session if it is the player's active one. Idempotent."""
    pid = coerce_uuid(player_id)
    sid = coerce_uuid(session_id)
    if pid is None or sid is None:
        return False

    async with atomic(db):
        result = await db.execute(
            update(PlayerSession)
            .where(_active(sid), PlayerSession.player_id == pid)
            .values(revoked_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
    revoked = result.rowcount > 0
    if revoked:
        logger.info("session_revoked", player_id=str(pid), session_id=str(sid))
    return revoked


async def try_get(
    db: AsyncSession,
    session_id: uuid.UUID | str | None,
    *,
    extend: bool = True,
    ttl: timedelta = DEFAULT_SESSION_TTL,
) -> SessionLookup | None:
    """Reverse lookup of an active session's player and device."""
    sid = coerce_uuid(session_id)
    if sid is None:
        return None

    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(PlayerSession.player_id, PlayerSession.device_id, PlayerSession.expires_at, Player.short_id)
        .join(Player, Player.player_id == PlayerSession.player_id)
        .where(_active(sid))
    )
    row = result.one_or_none()
    if row is None:
        return None

    if row.expires_at <= now:
        await _expire(db, sid, now)
        return None

    expires_at = row.expires_at
    if extend:
        if not await _slide(db, sid, expires_at, now, ttl):
            return None
        expires_at = max(expires_at, now + ttl)

    return SessionLookup(
        session_id=sid,
        player_id=row.player_id,
        device_id=row.device_id,
        player_short_id=row.short_id,
        expires_at=expires_at,
    )
