"""
Device/player directory.

Owns the players and devices tables: resolves a request's device or player
hints to a DeviceContext, creates anonymous players on first contact and
merges two player identities when an email claim or an explicit device
binding requires it.

Every merge runs as one transaction holding row locks on the player rows
involved, so a crash mid-merge can never leave devices pointing at a deleted
player.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from playerlink.database import atomic
from playerlink.db.models import Device, EmailVerification, Player, PlayerSession
from playerlink.directory.short_ids import (
    MAX_ATTEMPTS,
    SHORT_ID_LENGTH,
    ShortIdGenerator,
    generate_short_id,
    generate_unique_short_id,
    normalize_short_id,
)
from playerlink.errors import ConflictError, NotFoundError, TransientStoreError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


@dataclass(frozen=True)
class DeviceContext:
    """A device together with the player it is bound to."""

    player_id: uuid.UUID
    device_id: uuid.UUID
    player_short_id: str


def coerce_uuid(value: uuid.UUID | str | None) -> uuid.UUID | None:
    """Parse an identifier hint; malformed, blank and all-zero values become None."""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        parsed = value
    else:
        try:
            parsed = uuid.UUID(value.strip())
        except (ValueError, AttributeError):
            return None
    if parsed.int == 0:
        return None
    return parsed


def normalize_email(email: str) -> str:
    """Normalize an email address for storage and comparison."""
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def _load_by_device(db: AsyncSession, device_id: uuid.UUID) -> DeviceContext | None:
    result = await db.execute(
        select(Device.player_id, Player.short_id)
        .join(Player, Player.player_id == Device.player_id)
        .where(Device.device_id == device_id)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return DeviceContext(player_id=row.player_id, device_id=device_id, player_short_id=row.short_id)


async def _load_by_player(db: AsyncSession, player_id: uuid.UUID) -> DeviceContext | None:
    """Most recently seen device of the player, if any."""
    result = await db.execute(
        select(Device.device_id, Player.short_id)
        .join(Player, Player.player_id == Device.player_id)
        .where(Device.player_id == player_id)
        .order_by(Device.last_seen_at.desc())
        .limit(1)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return DeviceContext(player_id=player_id, device_id=row.device_id, player_short_id=row.short_id)


async def try_get_player_id_by_short_id(db: AsyncSession, short_id: str | None) -> uuid.UUID | None:
    """Point lookup of a player id by its short code."""
    short_id = normalize_short_id(short_id)
    if short_id is None:
        return None
    result = await db.execute(select(Player.player_id).where(Player.short_id == short_id))
    return result.scalar_one_or_none()


async def try_get(
    db: AsyncSession,
    player_id_hint: uuid.UUID | str | None,
    device_id_hint: uuid.UUID | str | None,
    *,
    mark_seen: bool = False,
) -> DeviceContext | None:
    """Resolve hints to a context without ever creating records."""
    context: DeviceContext | None = None

    device_id = coerce_uuid(device_id_hint)
    if device_id is not None:
        context = await _load_by_device(db, device_id)

    if context is None:
        player_id = coerce_uuid(player_id_hint)
        if player_id is not None:
            context = await _load_by_player(db, player_id)

    if context is not None and mark_seen:
        await touch(db, context)
    return context


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def _create_device_for_player(db: AsyncSession, player_id: uuid.UUID) -> DeviceContext | None:
    """Bind a brand-new device to an existing player. Returns None if the player is unknown."""
    now = datetime.now(timezone.utc)
    device_id = uuid.uuid4()
    async with atomic(db):
        # Shared lock keeps a concurrent merge from deleting the player under us
        result = await db.execute(
            select(Player.short_id).where(Player.player_id == player_id).with_for_update(read=True)
        )
        short_id = result.scalar_one_or_none()
        if short_id is None:
            return None
        await db.execute(
            insert(Device).values(device_id=device_id, player_id=player_id, created_at=now, last_seen_at=now)
        )
        await db.execute(update(Player).where(Player.player_id == player_id).values(updated_at=now))

    logger.info("device_created", player_id=str(player_id), device_id=str(device_id))
    return DeviceContext(player_id=player_id, device_id=device_id, player_short_id=short_id)


async def _create_fresh(
    db: AsyncSession,
    short_id_length: int,
    short_id_generator: ShortIdGenerator,
) -> DeviceContext:
    """Create a new anonymous player and its first device in one transaction."""
    for attempt in range(1, MAX_ATTEMPTS + 1):
        now = datetime.now(timezone.utc)
        player_id = uuid.uuid4()
        device_id = uuid.uuid4()
        try:
            async with atomic(db):
                short_id = await generate_unique_short_id(db, short_id_length, short_id_generator)
                await db.execute(
                    insert(Player).values(
                        player_id=player_id,
                        email=None,
                        short_id=short_id,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await db.execute(
                    insert(Device).values(device_id=device_id, player_id=player_id, created_at=now, last_seen_at=now)
                )
        except IntegrityError:
            # Another request claimed the same short id between check and insert
            logger.warning("short_id_collision", attempt=attempt)
            continue

        logger.info("player_created", player_id=str(player_id), device_id=str(device_id), short_id=short_id)
        return DeviceContext(player_id=player_id, device_id=device_id, player_short_id=short_id)

    msg = f"Failed to create player after {MAX_ATTEMPTS} attempts"
    raise RuntimeError(msg)


async def ensure(
    db: AsyncSession,
    player_id_hint: uuid.UUID | str | None,
    device_id_hint: uuid.UUID | str | None,
    *,
    short_id_length: int = SHORT_ID_LENGTH,
    short_id_generator: ShortIdGenerator = generate_short_id,
) -> DeviceContext:
    """
    Resolve or create the context for a client.

    Order: a known device wins; else a known player gets a new device; else a
    new player with a new device is created. This is the only path that
    creates players.
    """
    device_id = coerce_uuid(device_id_hint)
    if device_id is not None:
        existing = await _load_by_device(db, device_id)
        if existing is not None:
            await touch(db, existing)
            return existing

    player_id = coerce_uuid(player_id_hint)
    if player_id is not None:
        created = await _create_device_for_player(db, player_id)
        if created is not None:
            return created

    return await _create_fresh(db, short_id_length, short_id_generator)


# ---------------------------------------------------------------------------
# Freshness
# ---------------------------------------------------------------------------


async def touch(db: AsyncSession, context: DeviceContext) -> None:
    """Bump device last-seen and player freshness. Never fails the caller."""
    now = datetime.now(timezone.utc)
    try:
        async with atomic(db):
            await db.execute(update(Device).where(Device.device_id == context.device_id).values(last_seen_at=now))
            await db.execute(update(Player).where(Player.player_id == context.player_id).values(updated_at=now))
    except (SQLAlchemyError, TransientStoreError):
        logger.warning(
            "touch_failed",
            player_id=str(context.player_id),
            device_id=str(context.device_id),
            exc_info=True,
        )


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


async def _merge_into(
    db: AsyncSession,
    loser_id: uuid.UUID,
    winner_id: uuid.UUID,
    reason: str,
) -> str:
    """
    Fold the losing player into the winner inside the caller's transaction.

    Both player rows must already be locked. Returns the winner's short id.
    """
    now = datetime.now(timezone.utc)

    moved = await db.execute(
        update(Device)
        .where(Device.player_id == loser_id)
        .values(player_id=winner_id, last_seen_at=now)
        .execution_options(synchronize_session=False)
    )
    # The loser's sessions are not valid under any identity any more
    dropped = await db.execute(
        delete(PlayerSession)
        .where(PlayerSession.player_id == loser_id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(EmailVerification)
        .where(EmailVerification.player_id == loser_id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(Player).where(Player.player_id == loser_id).execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Player)
        .where(Player.player_id == winner_id)
        .values(updated_at=now)
        .execution_options(synchronize_session=False)
    )

    result = await db.execute(select(Player.short_id).where(Player.player_id == winner_id))
    short_id = result.scalar_one()

    logger.info(
        "players_merged",
        loser_id=str(loser_id),
        winner_id=str(winner_id),
        reason=reason,
        devices_moved=moved.rowcount,
        sessions_dropped=dropped.rowcount,
    )
    return short_id


async def attach_email(db: AsyncSession, context: DeviceContext, email: str) -> DeviceContext:
    """
    Claim an email address for the context's player.

    * nobody owns it: set it on the current player;
    * the current player owns it: no-op;
    * another player owns it: merge the current player into the owner.

    Raises:
        ValueError: If the email is blank.
        NotFoundError: If the current player no longer exists.
        ConflictError: If a concurrent claim took the address first.
    """
    normalized = normalize_email(email)
    if not normalized:
        msg = "Email cannot be empty"
        raise ValueError(msg)

    try:
        async with atomic(db):
            current = await db.execute(
                select(Player.player_id).where(Player.player_id == context.player_id).with_for_update()
            )
            if current.scalar_one_or_none() is None:
                raise NotFoundError("player", context.player_id)

            owner = await db.execute(select(Player.player_id).where(Player.email == normalized).with_for_update())
            owner_id = owner.scalar_one_or_none()

            if owner_id is None:
                await db.execute(
                    update(Player)
                    .where(Player.player_id == context.player_id)
                    .values(email=normalized, updated_at=datetime.now(timezone.utc))
                    .execution_options(synchronize_session=False)
                )
                result = context
                logger.info("email_attached", player_id=str(context.player_id))
            elif owner_id == context.player_id:
                result = context
            else:
                short_id = await _merge_into(db, context.player_id, owner_id, reason="email")
                result = replace(context, player_id=owner_id, player_short_id=short_id)
    except IntegrityError as exc:
        logger.warning("email_claim_conflict", player_id=str(context.player_id))
        raise ConflictError("email_already_taken", "This email address is already in use.") from exc

    await touch(db, result)
    return result


async def bind_device(
    db: AsyncSession,
    context: DeviceContext,
    target_player_id: uuid.UUID | str,
) -> DeviceContext:
    """
    Re-point the context's player (and all its devices) at an existing target player.

    Used by magic-link accept and short-code login. No-op when already bound.

    Raises:
        ValueError: If the target id is malformed.
        NotFoundError: If either player no longer exists.
    """
    target_id = coerce_uuid(target_player_id)
    if target_id is None:
        msg = "Invalid target player id"
        raise ValueError(msg)

    if context.player_id == target_id:
        return context

    async with atomic(db):
        # Lock both rows in a stable order so opposite-direction binds cannot deadlock
        locked = await db.execute(
            select(Player.player_id)
            .where(Player.player_id.in_([context.player_id, target_id]))
            .order_by(Player.player_id)
            .with_for_update()
        )
        present = set(locked.scalars().all())
        if target_id not in present:
            raise NotFoundError("player", target_id)
        if context.player_id not in present:
            raise NotFoundError("player", context.player_id)

        short_id = await _merge_into(db, context.player_id, target_id, reason="bind")

    bound = replace(context, player_id=target_id, player_short_id=short_id)
    await touch(db, bound)
    return bound
