"""Shared response shapes. JSON uses camelCase; snake_case is accepted on input."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OkResponse(CamelModel):
    ok: bool = True


class IdentityResponse(CamelModel):
    """Player, short code and device a client should remember."""

    player_id: uuid.UUID | None = None
    player_short_id: str | None = None
    device_id: uuid.UUID | None = None


class WhoAmIResponse(IdentityResponse):
    session_id: uuid.UUID | None = None
