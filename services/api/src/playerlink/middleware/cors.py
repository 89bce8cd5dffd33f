"""CORS middleware configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from playerlink.config import Settings
from playerlink.identity.sources import (
    DEVICE_ID_HEADER,
    PLAYER_ID_HEADER,
    PLAYER_SHORT_ID_HEADER,
    SESSION_ID_HEADER,
)


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the game clients' origins with credentials; expose identity headers to scripts."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-Id",
            "X-RateLimit-Remaining",
            "X-RateLimit-Limit",
            PLAYER_ID_HEADER,
            PLAYER_SHORT_ID_HEADER,
            DEVICE_ID_HEADER,
            SESSION_ID_HEADER,
        ],
    )
