"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database (StaticPool, foreign keys
on) with the schema created from the ORM metadata. Redis is not initialized,
so rate limiting and mail throttling are skipped and the transfer token
store uses its in-memory backend.
"""

from __future__ import annotations

import os

os.environ["PLAYERLINK_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PLAYERLINK_EMAIL_PROVIDER"] = "debug"
os.environ["PLAYERLINK_LOG_FORMAT"] = "console"

import re  # noqa: E402
from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from urllib.parse import parse_qs, urlparse  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from playerlink.config import get_settings  # noqa: E402
from playerlink.database import close_db, get_engine, init_db  # noqa: E402
from playerlink.db import models  # noqa: E402, F401
from playerlink.db.base import Base  # noqa: E402
from playerlink.email.service import reset_email_service  # noqa: E402
from playerlink.main import create_app  # noqa: E402
from playerlink.transfer.token_store import reset_token_store  # noqa: E402

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def is_uuid(value: object) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def token_from_link(link: str) -> str:
    """Pull the one-time token out of an emailed link."""
    return parse_qs(urlparse(link).query)["token"][0]


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema in a private in-memory database."""
    get_settings.cache_clear()
    reset_token_store()
    reset_email_service()
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()
    reset_token_store()
    reset_email_service()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service calls and assertions."""
    async with AsyncSession(get_engine(), expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture
async def app(database: None) -> FastAPI:
    return create_app()


@pytest_asyncio.fixture
async def make_client(app: FastAPI) -> AsyncGenerator[Callable[[], Awaitable[AsyncClient]], None]:
    """Factory for independent clients; each has its own cookie jar, like a separate browser."""
    clients: list[AsyncClient] = []

    async def factory() -> AsyncClient:
        ac = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(ac)
        return ac

    yield factory

    for ac in clients:
        await ac.aclose()


@pytest_asyncio.fixture
async def client(make_client: Callable[[], Awaitable[AsyncClient]]) -> AsyncClient:
    """An async HTTP test client acting as one browser."""
    return await make_client()


@pytest.fixture
def mock_email_service(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace the mailer in every router that sends email."""
    mock_service = MagicMock()
    mock_service.send_template = AsyncMock(return_value=None)
    mock_service.send_email = AsyncMock(return_value=None)

    monkeypatch.setattr("playerlink.devices.router.get_email_service", lambda *a, **kw: mock_service)
    monkeypatch.setattr("playerlink.verification.router.get_email_service", lambda *a, **kw: mock_service)
    return mock_service


async def init_device(client: AsyncClient) -> dict:
    """POST /device/init and return the JSON identity."""
    response = await client.post("/device/init")
    assert response.status_code == 200, response.text
    return response.json()


async def login(client: AsyncClient) -> dict:
    """Init the device if needed and log in. Returns the login JSON."""
    if "player_id" not in client.cookies:
        await init_device(client)
    response = await client.post("/session/login")
    assert response.status_code == 200, response.text
    return response.json()
