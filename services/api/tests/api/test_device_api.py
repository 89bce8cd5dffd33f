"""POST /device/init and GET /whoami."""

import uuid

import pytest
from httpx import AsyncClient

from conftest import init_device, is_uuid


@pytest.mark.asyncio
async def test_init_creates_identity(client: AsyncClient) -> None:
    response = await client.post("/device/init")
    assert response.status_code == 200
    data = response.json()
    assert is_uuid(data["playerId"])
    assert is_uuid(data["deviceId"])
    assert len(data["playerShortId"]) == 8

    assert client.cookies["player_id"] == data["playerId"]
    assert client.cookies["device_id"] == data["deviceId"]
    assert client.cookies["playerShortId"] == data["playerShortId"]
    assert response.headers["x-player-id"] == data["playerId"]
    assert response.headers["x-player-short-id"] == data["playerShortId"]
    assert response.headers["x-device-id"] == data["deviceId"]


@pytest.mark.asyncio
async def test_identity_cookies_are_http_only(client: AsyncClient) -> None:
    response = await client.post("/device/init")
    set_cookies = response.headers.get_list("set-cookie")
    assert len(set_cookies) == 3
    for header in set_cookies:
        lowered = header.lower()
        assert "httponly" in lowered
        assert "samesite=lax" in lowered
        assert "max-age=31536000" in lowered
        # Plain http test transport
        assert "secure" not in lowered


@pytest.mark.asyncio
async def test_init_is_idempotent(client: AsyncClient) -> None:
    first = await init_device(client)
    second = await init_device(client)
    assert second == first


@pytest.mark.asyncio
async def test_headers_work_without_cookies(make_client) -> None:
    browser = await make_client()
    first = await init_device(browser)

    headless = await make_client()
    response = await headless.post(
        "/device/init",
        headers={"X-Player-Id": first["playerId"], "X-Device-Id": first["deviceId"]},
    )
    assert response.json() == first


@pytest.mark.asyncio
async def test_new_device_for_known_player(make_client) -> None:
    phone = await make_client()
    first = await init_device(phone)

    laptop = await make_client()
    response = await laptop.post("/device/init", headers={"X-Player-Id": first["playerId"]})
    data = response.json()
    assert data["playerId"] == first["playerId"]
    assert data["playerShortId"] == first["playerShortId"]
    assert data["deviceId"] != first["deviceId"]


@pytest.mark.asyncio
async def test_malformed_cookies_start_fresh(client: AsyncClient) -> None:
    client.cookies.set("player_id", "not-a-uuid")
    client.cookies.set("device_id", "00000000-0000-0000-0000-000000000000")
    data = await init_device(client)
    assert is_uuid(data["playerId"])
    assert data["deviceId"] != "00000000-0000-0000-0000-000000000000"


@pytest.mark.asyncio
async def test_whoami_anonymous(client: AsyncClient) -> None:
    response = await client.get("/whoami")
    assert response.status_code == 200
    assert response.json() == {"playerId": None, "playerShortId": None, "deviceId": None, "sessionId": None}


@pytest.mark.asyncio
async def test_whoami_never_creates(client: AsyncClient) -> None:
    ghost = str(uuid.uuid4())
    response = await client.get("/whoami", headers={"X-Player-Id": ghost})
    data = response.json()
    assert data["playerId"] == ghost
    assert data["playerShortId"] is None
    assert "set-cookie" not in response.headers


@pytest.mark.asyncio
async def test_whoami_after_init(client: AsyncClient) -> None:
    identity = await init_device(client)
    data = (await client.get("/whoami")).json()
    assert data["playerId"] == identity["playerId"]
    assert data["playerShortId"] == identity["playerShortId"]
    assert data["deviceId"] == identity["deviceId"]
    assert data["sessionId"] is None
