"""Identity schema: players, devices, sessions, email_verifications.

Sessions carry a partial UNIQUE index over player_id WHERE revoked_at IS NULL,
so a player can never hold two active sessions even if application locking
is bypassed.

Revision ID: 001_identity_schema
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_identity_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the identity tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS citext")

    # --- players ---
    op.create_table(
        "players",
        sa.Column("player_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", postgresql.CITEXT(), nullable=True),
        sa.Column("short_id", sa.String(32), nullable=False),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("email", name="players_email_key"),
        sa.UniqueConstraint("short_id", name="players_short_id_key"),
    )

    # --- devices ---
    op.create_table(
        "devices",
        sa.Column("device_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "player_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("players.player_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_devices_player_id", "devices", ["player_id"])

    # --- sessions ---
    op.create_table(
        "sessions",
        sa.Column("session_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "player_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("players.player_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "device_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("devices.device_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_sessions_player_active",
        "sessions",
        ["player_id"],
        unique=True,
        postgresql_where=sa.text("revoked_at IS NULL"),
    )

    # --- email_verifications ---
    op.create_table(
        "email_verifications",
        sa.Column("verification_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "player_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("players.player_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", postgresql.CITEXT(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("token_hash", name="email_verifications_token_hash_key"),
    )
    op.create_index("ix_email_verifications_player_id", "email_verifications", ["player_id"])


def downgrade() -> None:
    """Drop the identity tables."""
    op.drop_index("ix_email_verifications_player_id", table_name="email_verifications")
    op.drop_table("email_verifications")
    op.drop_index("ix_sessions_player_active", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("ix_devices_player_id", table_name="devices")
    op.drop_table("devices")
    op.drop_table("players")
