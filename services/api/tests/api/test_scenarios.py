"""End-to-end flows: binding by short code, email claims and magic-link transfer."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import init_device, login, token_from_link
from playerlink.database import get_engine
from playerlink.db.models import Device, Player, PlayerSession
from playerlink.dependencies import get_token_store
from playerlink.transfer.token_store import MemoryExpiringCache, TransferTokenStore


async def _scalar(stmt):
    async with AsyncSession(get_engine()) as db:
        return (await db.execute(stmt)).scalar()


async def _player_exists(player_id: str) -> bool:
    return await _scalar(select(func.count()).where(Player.player_id == uuid.UUID(player_id))) == 1


async def _device_owner(device_id: str) -> str:
    return str(await _scalar(select(Device.player_id).where(Device.device_id == uuid.UUID(device_id))))


async def _revoked_at(session_id: str):
    return await _scalar(select(PlayerSession.revoked_at).where(PlayerSession.session_id == uuid.UUID(session_id)))


def _sent_link(mock_email_service) -> str:
    return mock_email_service.send_template.call_args.kwargs["context"]["link"]


@pytest.mark.asyncio
async def test_bind_by_short_code_replaces_session(make_client) -> None:
    d1 = await make_client()
    p1 = await init_device(d1)
    s1 = await login(d1)

    d2 = await make_client()
    p2 = await init_device(d2)
    s2 = await login(d2)
    assert p2["playerId"] != p1["playerId"]

    response = await d2.post("/session/login/short", json={"shortId": p1["playerShortId"]})
    assert response.status_code == 200
    s3 = response.json()

    assert await _device_owner(p2["deviceId"]) == p1["playerId"]
    assert not await _player_exists(p2["playerId"])
    assert await _scalar(select(func.count()).where(PlayerSession.player_id == uuid.UUID(p2["playerId"]))) == 0
    assert await _scalar(select(func.count()).where(PlayerSession.session_id == uuid.UUID(s2["sessionId"]))) == 0
    assert await _revoked_at(s1["sessionId"]) is not None
    assert await _revoked_at(s3["sessionId"]) is None

    kicked = await d1.post("/email/verification/start", json={"email": "a@example.com"})
    assert kicked.status_code == 401


@pytest.mark.asyncio
async def test_email_claim_merges_second_player(make_client, mock_email_service) -> None:
    a = await make_client()
    pa = await init_device(a)
    response = await a.post("/device/transfer/start", json={"email": "x@example.com"})
    assert response.status_code == 200
    assert await _scalar(select(Player.email).where(Player.player_id == uuid.UUID(pa["playerId"]))) == "x@example.com"

    b = await make_client()
    pb = await init_device(b)
    response = await b.post("/device/transfer/start", json={"email": "X@Example.com"})
    assert response.status_code == 200

    assert not await _player_exists(pb["playerId"])
    assert await _device_owner(pb["deviceId"]) == pa["playerId"]
    assert b.cookies["player_id"] == pa["playerId"]
    assert b.cookies["playerShortId"] == pa["playerShortId"]


@pytest.mark.asyncio
async def test_magic_link_transfer(make_client, mock_email_service) -> None:
    phone = await make_client()
    identity = await init_device(phone)
    phone_session = await login(phone)

    response = await phone.post("/device/transfer/start", json={"email": "player@example.com"})
    assert response.status_code == 200
    kwargs = mock_email_service.send_template.call_args.kwargs
    assert kwargs["template_name"] == "magic_link"
    assert kwargs["to"] == "player@example.com"
    assert kwargs["context"]["expires_minutes"] == 10
    link = _sent_link(mock_email_service)
    assert link.startswith("http://test/device/transfer/accept?token=")

    laptop = await make_client()
    response = await laptop.get(link)
    assert response.status_code == 200
    data = response.json()
    assert data["playerId"] == identity["playerId"]
    assert data["playerShortId"] == identity["playerShortId"]
    assert data["deviceId"] != identity["deviceId"]
    assert laptop.cookies["session_id"] == data["sessionId"]
    assert laptop.cookies["player_id"] == identity["playerId"]

    assert await _revoked_at(phone_session["sessionId"]) is not None
    kicked = await phone.post("/email/verification/start", json={"email": "player@example.com"})
    assert kicked.status_code == 401

    replay = await laptop.get(link)
    assert replay.status_code == 410


@pytest.mark.asyncio
async def test_transfer_link_for_existing_laptop_player_merges_it(make_client, mock_email_service) -> None:
    phone = await make_client()
    identity = await init_device(phone)
    await phone.post("/device/transfer/start", json={"email": "player@example.com"})
    token = token_from_link(_sent_link(mock_email_service))

    laptop = await make_client()
    stray = await init_device(laptop)
    response = await laptop.get("/device/transfer/accept", params={"token": token})
    assert response.status_code == 200
    assert response.json()["deviceId"] == stray["deviceId"]
    assert await _device_owner(stray["deviceId"]) == identity["playerId"]
    assert not await _player_exists(stray["playerId"])


@pytest.mark.asyncio
async def test_transfer_link_expires(app, make_client, mock_email_service) -> None:
    now = [1000.0]
    store = TransferTokenStore(MemoryExpiringCache(clock=lambda: now[0]))
    app.dependency_overrides[get_token_store] = lambda: store

    phone = await make_client()
    await init_device(phone)
    await phone.post("/device/transfer/start", json={"email": "player@example.com"})

    now[0] += timedelta(minutes=11).total_seconds()
    laptop = await make_client()
    response = await laptop.get(_sent_link(mock_email_service))
    assert response.status_code == 410
    assert response.json() == {"detail": "Link expired or already used."}


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["", "?token=", "?token=%20%20"])
async def test_transfer_accept_missing_token(client, query) -> None:
    response = await client.get(f"/device/transfer/accept{query}")
    assert response.status_code == 400
    assert response.json() == {"detail": "Missing token"}


@pytest.mark.asyncio
async def test_transfer_start_rejects_bad_email(client, mock_email_service) -> None:
    response = await client.post("/device/transfer/start", json={"email": "nope"})
    assert response.status_code == 422
    mock_email_service.send_template.assert_not_awaited()
