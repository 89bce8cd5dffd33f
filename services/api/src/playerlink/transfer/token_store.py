"""
One-time transfer tokens for the magic-link device-transfer flow.

A token is 32 random bytes, URL-safe encoded, and is only ever held by the
recipient of the email. The store keeps sha256(token) -> player id with a
TTL, so a snapshot of the cache cannot be replayed to forge a transfer.

The cache is advisory: losing it (restart, eviction) only invalidates
pending transfers. The process-local backend is the default; the Redis
backend shares tokens between workers.
"""

from __future__ import annotations

import hashlib
import secrets
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import timedelta

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

TOKEN_KEY_PREFIX = "xfer:"
DEFAULT_TRANSFER_TTL = timedelta(minutes=10)

Clock = Callable[[], float]


class ExpiringCache(ABC):
    """Key-value store with per-entry TTL and atomic take."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        """Store value under key for ttl."""

    @abstractmethod
    async def take(self, key: str) -> str | None:
        """Atomically read and delete key. None if missing or expired."""


class MemoryExpiringCache(ExpiringCache):
    """Process-local cache. Expired entries are dropped on every write, on access and on purge()."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        # Guards take() when the app runs on a threaded server as well
        self._lock = threading.Lock()

    def _drop_expired(self, now: float) -> int:
        # Caller holds the lock
        expired = [key for key, (_, deadline) in self._entries.items() if now >= deadline]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        now = self._clock()
        with self._lock:
            # Expired entries that were never taken are dropped here
            self._drop_expired(now)
            self._entries[key] = (value, now + ttl.total_seconds())

    async def take(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            return None
        value, deadline = entry
        if self._clock() >= deadline:
            return None
        return value

    def purge(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            return self._drop_expired(now)

    def __len__(self) -> int:
        return len(self._entries)


class RedisExpiringCache(ExpiringCache):
    """Shared cache using SET PX and GETDEL."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        await self._client.set(key, value, px=int(ttl.total_seconds() * 1000))

    async def take(self, key: str) -> str | None:
        value = await self._client.getdel(key)
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else value


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TransferTokenStore:
    """Issues and consumes one-time transfer tokens."""

    def __init__(self, cache: ExpiringCache) -> None:
        self._cache = cache

    @property
    def cache(self) -> ExpiringCache:
        return self._cache

    async def create_token(self, player_id: uuid.UUID, ttl: timedelta = DEFAULT_TRANSFER_TTL) -> str:
        """Issue a token that resolves to player_id exactly once within ttl."""
        token = secrets.token_urlsafe(32)
        await self._cache.set(TOKEN_KEY_PREFIX + hash_token(token), str(player_id), ttl)
        logger.info("transfer_token_created", player_id=str(player_id), ttl_seconds=int(ttl.total_seconds()))
        return token

    async def consume_token(self, token: str | None) -> uuid.UUID | None:
        """Redeem a token. Expired, unknown and already-used tokens all yield None."""
        if not token or not token.strip():
            return None
        value = await self._cache.take(TOKEN_KEY_PREFIX + hash_token(token.strip()))
        if value is None:
            return None
        try:
            player_id = uuid.UUID(value)
        except ValueError:
            logger.warning("transfer_token_corrupt")
            return None
        logger.info("transfer_token_consumed", player_id=str(player_id))
        return player_id


# Module-level singleton
_token_store: TransferTokenStore | None = None


def configure_token_store(backend: str = "memory", client: redis.Redis | None = None) -> TransferTokenStore:
    """Install the process-wide store for the given backend ("memory" or "redis")."""
    global _token_store  # noqa: PLW0603
    if backend == "redis":
        if client is None:
            msg = "Redis token cache requires a Redis client"
            raise RuntimeError(msg)
        cache: ExpiringCache = RedisExpiringCache(client)
    elif backend == "memory":
        cache = MemoryExpiringCache()
    else:
        msg = f"Unknown token cache backend: {backend}"
        raise ValueError(msg)
    _token_store = TransferTokenStore(cache)
    return _token_store


def get_token_store() -> TransferTokenStore:
    """Get the process-wide store, defaulting to the in-memory backend (FastAPI dependency)."""
    global _token_store  # noqa: PLW0603
    if _token_store is None:
        _token_store = TransferTokenStore(MemoryExpiringCache())
    return _token_store


def reset_token_store() -> None:
    """Drop the process-wide store (for testing)."""
    global _token_store  # noqa: PLW0603
    _token_store = None
