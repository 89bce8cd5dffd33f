"""Request/response schemas for email verification endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import EmailStr, field_validator

from playerlink.identity.schemas import CamelModel


class VerificationStartRequest(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class VerificationStartResponse(CamelModel):
    ok: bool = True
    expires_at_utc: datetime


class VerificationConfirmResponse(CamelModel):
    ok: bool
    result: str
    detail: str
