"""Request/response schemas for device endpoints."""

from __future__ import annotations

import uuid

from pydantic import EmailStr, field_validator

from playerlink.identity.schemas import CamelModel


class TransferStartRequest(CamelModel):
    """Ask for a magic link to continue on another device."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class TransferAcceptResponse(CamelModel):
    ok: bool = True
    player_id: uuid.UUID
    player_short_id: str
    device_id: uuid.UUID
    session_id: uuid.UUID
