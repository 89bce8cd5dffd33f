"""Short player codes.

Codes are drawn server-side from a cryptographic random source over an
alphabet without the worst look-alike characters (no 0/O, l/I), so players can read
them aloud or type them on another device.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from playerlink.db.models import Player

SHORT_ID_ALPHABET = "abcdefghijkmnopqrstuvwxyzABCDEFGHJKLMNPQRSTUVWXYZ123456789"
SHORT_ID_LENGTH = 8
MAX_ATTEMPTS = 10

ShortIdGenerator = Callable[[int], str]


def generate_short_id(length: int = SHORT_ID_LENGTH) -> str:
    """Generate a random short id of the given length."""
    if length <= 0:
        msg = "Short id length must be positive"
        raise ValueError(msg)
    return "".join(secrets.choice(SHORT_ID_ALPHABET) for _ in range(length))


def normalize_short_id(short_id: str | None) -> str | None:
    """Trim a user-supplied short id; blank values become None. Codes are case-sensitive."""
    if short_id is None:
        return None
    trimmed = short_id.strip()
    return trimmed or None


async def generate_unique_short_id(
    db: AsyncSession,
    length: int = SHORT_ID_LENGTH,
    generator: ShortIdGenerator = generate_short_id,
) -> str:
    """Generate a short id that no player currently holds."""
    for _ in range(MAX_ATTEMPTS):
        candidate = generator(length)
        existing = await db.execute(select(Player.player_id).where(Player.short_id == candidate))
        if existing.scalar_one_or_none() is None:
            return candidate
    msg = f"Failed to generate unique short id after {MAX_ATTEMPTS} attempts"
    raise RuntimeError(msg)
