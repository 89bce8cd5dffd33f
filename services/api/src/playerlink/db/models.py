"""ORM models for players, devices, sessions and pending email verifications.

The schema mirrors alembic/versions/001_identity_schema.py. Rows are never
linked through ORM relationships: every write path uses explicit statements
so merges and session replacement stay single-transaction and lock-ordered.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from playerlink.db.base import Base
from playerlink.db.types import EmailText, UTCDateTime


# ---------------------------------------------------------------------------
# Players & devices
# ---------------------------------------------------------------------------


class Player(Base):
    """Durable account identity, independent of any browser or device."""

    __tablename__ = "players"

    player_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str | None] = mapped_column(EmailText, unique=True, nullable=True)
    short_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    email_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class Device(Base):
    """A browser/client installation, bound to exactly one player."""

    __tablename__ = "devices"
    __table_args__ = (Index("ix_devices_player_id", "player_id"),)

    device_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    player_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("players.player_id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class PlayerSession(Base):
    """Time-boxed login for one player on one device. Closed via revoked_at, never deleted."""

    __tablename__ = "sessions"
    __table_args__ = (
        # At most one unrevoked session per player
        Index(
            "ix_sessions_player_active",
            "player_id",
            unique=True,
            postgresql_where=text("revoked_at IS NULL"),
            sqlite_where=text("revoked_at IS NULL"),
        ),
    )

    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    player_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("players.player_id", ondelete="CASCADE"), nullable=False
    )
    device_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("devices.device_id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


class EmailVerification(Base):
    """Pending email claim for a player. At most one per player."""

    __tablename__ = "email_verifications"
    __table_args__ = (Index("ix_email_verifications_player_id", "player_id"),)

    verification_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    player_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("players.player_id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(EmailText, nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
