"""Shared FastAPI dependencies."""

from playerlink.database import get_session
from playerlink.transfer.token_store import get_token_store

get_db = get_session

__all__ = ["get_db", "get_token_store"]
