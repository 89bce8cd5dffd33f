"""Middleware tests: request id, CORS, rate limiting off without Redis, error mapping."""

import uuid

import pytest
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from httpx import ASGITransport, AsyncClient

from playerlink.errors import ConflictError, SessionInvalidError, TransientStoreError
from playerlink.middleware.logging import redact_pii
from playerlink.middleware.rate_limit import RateLimitMiddleware
from playerlink.middleware.request_id import RequestIdMiddleware
from playerlink.redis_client import get_redis, init_redis, redis_enabled


@pytest.fixture
async def failing_client(app: FastAPI):
    """Client for an app with routes that raise each mapped error."""

    @app.get("/_raise/transient")
    async def raise_transient() -> None:
        raise TransientStoreError("deadlock detected")

    @app.get("/_raise/conflict")
    async def raise_conflict() -> None:
        raise ConflictError("email_already_taken", "This email address is already in use.")

    @app.get("/_raise/session")
    async def raise_session() -> None:
        raise SessionInvalidError

    @app.get("/_raise/boom")
    async def raise_boom() -> None:
        msg = "boom"
        raise RuntimeError(msg)

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert uuid.UUID(response.headers["x-request-id"])


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_no_rate_limit_without_redis(client: AsyncClient) -> None:
    for _ in range(120):
        response = await client.get("/version")
        assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_middleware_layers_outermost_first(app: FastAPI) -> None:
    layers = [m.cls for m in app.user_middleware]
    assert layers == [CORSMiddleware, RequestIdMiddleware, RateLimitMiddleware]


@pytest.mark.asyncio
async def test_cors_preflight_allows_credentials(client: AsyncClient) -> None:
    response = await client.options(
        "/device/init",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert response.headers["access-control-allow-credentials"] == "true"


@pytest.mark.asyncio
async def test_cors_exposes_identity_headers(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"Origin": "http://localhost:5173"})
    exposed = response.headers["access-control-expose-headers"].lower()
    for name in ("x-player-id", "x-player-short-id", "x-device-id", "x-session-id"):
        assert name in exposed


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json() == {"detail": "Not Found"}


@pytest.mark.asyncio
async def test_validation_error_shape(client: AsyncClient) -> None:
    response = await client.post("/device/transfer/start", json={"email": "not-an-email"})
    assert response.status_code == 422
    data = response.json()
    assert data["detail"] == "Validation error"
    assert data["errors"]


@pytest.mark.asyncio
async def test_transient_error_is_503_with_retry_after(failing_client: AsyncClient) -> None:
    response = await failing_client.get("/_raise/transient")
    assert response.status_code == 503
    assert response.headers["retry-after"] == "1"


@pytest.mark.asyncio
async def test_conflict_carries_code(failing_client: AsyncClient) -> None:
    response = await failing_client.get("/_raise/conflict")
    assert response.status_code == 409
    assert response.json() == {"detail": "This email address is already in use.", "code": "email_already_taken"}


@pytest.mark.asyncio
async def test_invalid_session_clears_cookie(failing_client: AsyncClient) -> None:
    response = await failing_client.get("/_raise/session")
    assert response.status_code == 401
    assert response.json() == {"detail": "Signed out: login from another device."}
    assert "session_id=" in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_unhandled_error_is_json_500(failing_client: AsyncClient) -> None:
    response = await failing_client.get("/_raise/boom")
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


def test_log_redaction_masks_secrets_and_addresses() -> None:
    event = redact_pii(None, "info", {"event": "email_sent", "to": "alice@example.com", "token": "abc"})
    assert event["to"] == "a***@example.com"
    assert event["token"] == "[redacted]"
    assert event["event"] == "email_sent"


@pytest.mark.asyncio
async def test_blank_redis_url_disables_redis() -> None:
    await init_redis("  ")
    assert not redis_enabled()
    with pytest.raises(RuntimeError):
        get_redis()
