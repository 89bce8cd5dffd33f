"""Unit tests for the one-time transfer token store."""

import asyncio
import uuid
from datetime import timedelta

import pytest

from playerlink.transfer.token_store import (
    TOKEN_KEY_PREFIX,
    MemoryExpiringCache,
    RedisExpiringCache,
    TransferTokenStore,
    configure_token_store,
    get_token_store,
    hash_token,
    reset_token_store,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta.total_seconds()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> TransferTokenStore:
    return TransferTokenStore(MemoryExpiringCache(clock=clock))


class TestMemoryExpiringCache:
    async def test_take_returns_value_once(self, clock):
        cache = MemoryExpiringCache(clock=clock)
        await cache.set("k", "v", timedelta(minutes=1))
        assert await cache.take("k") == "v"
        assert await cache.take("k") is None

    async def test_expired_entry_is_gone(self, clock):
        cache = MemoryExpiringCache(clock=clock)
        await cache.set("k", "v", timedelta(seconds=5))
        clock.advance(timedelta(seconds=5))
        assert await cache.take("k") is None

    async def test_purge_drops_only_expired(self, clock):
        cache = MemoryExpiringCache(clock=clock)
        await cache.set("short", "v", timedelta(seconds=1))
        await cache.set("long", "v", timedelta(hours=1))
        clock.advance(timedelta(seconds=2))
        assert cache.purge() == 1
        assert len(cache) == 1

    async def test_writes_evict_untaken_expired_entries(self, clock):
        cache = MemoryExpiringCache(clock=clock)
        for i in range(1000):
            await cache.set(f"k{i}", "v", timedelta(minutes=10))
            clock.advance(timedelta(seconds=60))
        # Only entries written in the last ten minutes are still live
        assert len(cache) <= 11
        assert await cache.take("k999") == "v"
        assert await cache.take("k0") is None

    async def test_abandoned_transfer_tokens_do_not_accumulate(self, clock):
        cache = MemoryExpiringCache(clock=clock)
        store = TransferTokenStore(cache)
        for _ in range(200):
            await store.create_token(uuid.uuid4(), timedelta(minutes=10))
            clock.advance(timedelta(minutes=11))
        assert len(cache) == 1


class TestTransferTokenStore:
    async def test_consume_returns_player_once(self, store):
        player_id = uuid.uuid4()
        token = await store.create_token(player_id)
        assert await store.consume_token(token) == player_id
        assert await store.consume_token(token) is None

    async def test_expired_after_eleven_minutes(self, store, clock):
        player_id = uuid.uuid4()
        token = await store.create_token(player_id, timedelta(minutes=10))
        clock.advance(timedelta(minutes=11))
        assert await store.consume_token(token) is None

    async def test_still_valid_just_before_expiry(self, store, clock):
        player_id = uuid.uuid4()
        token = await store.create_token(player_id, timedelta(minutes=10))
        clock.advance(timedelta(minutes=9, seconds=59))
        assert await store.consume_token(token) == player_id

    async def test_only_hash_is_stored(self, clock):
        cache = MemoryExpiringCache(clock=clock)
        store = TransferTokenStore(cache)
        token = await store.create_token(uuid.uuid4())
        assert token not in cache._entries
        assert TOKEN_KEY_PREFIX + hash_token(token) in cache._entries

    async def test_tokens_are_url_safe_and_distinct(self, store):
        tokens = {await store.create_token(uuid.uuid4()) for _ in range(50)}
        assert len(tokens) == 50
        for token in tokens:
            assert len(token) >= 43
            assert all(c.isalnum() or c in "-_" for c in token)

    @pytest.mark.parametrize("token", [None, "", "   ", "unknown"])
    async def test_unknown_tokens(self, store, token):
        assert await store.consume_token(token) is None

    async def test_concurrent_consumers_single_winner(self, store):
        player_id = uuid.uuid4()
        token = await store.create_token(player_id)
        results = await asyncio.gather(*(store.consume_token(token) for _ in range(20)))
        assert results.count(player_id) == 1
        assert results.count(None) == 19


class FakeRedis:
    """Just enough of redis.asyncio.Redis for SET PX / GETDEL."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.px: dict[str, int] = {}

    async def set(self, key, value, px=None):
        self.data[key] = value
        self.px[key] = px

    async def getdel(self, key):
        return self.data.pop(key, None)


class TestRedisBackend:
    async def test_set_uses_millisecond_ttl(self):
        fake = FakeRedis()
        store = TransferTokenStore(RedisExpiringCache(fake))
        player_id = uuid.uuid4()
        token = await store.create_token(player_id, timedelta(minutes=10))
        key = TOKEN_KEY_PREFIX + hash_token(token)
        assert fake.px[key] == 600_000
        assert await store.consume_token(token) == player_id
        assert await store.consume_token(token) is None

    async def test_bytes_values_are_decoded(self):
        fake = FakeRedis()
        cache = RedisExpiringCache(fake)
        fake.data["k"] = b"abc"
        assert await cache.take("k") == "abc"


class TestSingleton:
    def test_default_is_memory(self):
        reset_token_store()
        assert isinstance(get_token_store().cache, MemoryExpiringCache)
        assert get_token_store() is get_token_store()
        reset_token_store()

    def test_redis_backend_needs_client(self):
        with pytest.raises(RuntimeError):
            configure_token_store("redis")
        reset_token_store()

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            configure_token_store("memcached")
        reset_token_store()

    def test_configure_redis(self):
        store = configure_token_store("redis", client=FakeRedis())
        assert isinstance(store.cache, RedisExpiringCache)
        assert get_token_store() is store
        reset_token_store()
