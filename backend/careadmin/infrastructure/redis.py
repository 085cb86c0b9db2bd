"""Redis client for shared session state.

This module provides async Redis operations for:
- Impersonation session records (atomic create-if-absent with TTL)
- Identity overlays published for the transport

Nothing session-related is kept in process memory; every worker reads the
same keys.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto

from redis.asyncio import Redis as AsyncRedis, from_url as async_from_url

logger = logging.getLogger(__name__)


class _RedisLifecycleState(Enum):
    """Lifecycle states for the Redis singleton.

    State transitions:
    - UNINITIALIZED -> INITIALIZED (via init_redis)
    - INITIALIZED -> CLOSED (via close_redis)
    - CLOSED -> INITIALIZED (via init_redis - allows restart)

    Invariants:
    - init_redis() is idempotent: repeated calls in INITIALIZED state are no-ops
    - close_redis() is idempotent: repeated calls in CLOSED/UNINITIALIZED state are no-ops
    - get_redis() raises RuntimeError if state is not INITIALIZED
    """
    UNINITIALIZED = auto()
    INITIALIZED = auto()
    CLOSED = auto()


class RedisClient:
    """Async Redis client for session state shared across workers."""

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._redis: AsyncRedis | None = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._redis is None:
            self._redis = async_from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis connection established")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed")

    async def _ensure_connected(self) -> AsyncRedis:
        if self._redis is None:
            await self.connect()
        assert self._redis is not None
        return self._redis

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Set key only if it does not exist (SET NX EX).

        Returns:
            True if the value was written, False if the key already existed
        """
        redis = await self._ensure_connected()
        written = await redis.set(key, value, nx=True, ex=ttl_seconds)
        return bool(written)

    async def set_value(
        self,
        key: str,
        value: str,
        ttl_seconds: int | None = None,
    ) -> None:
        redis = await self._ensure_connected()
        if ttl_seconds:
            await redis.setex(key, ttl_seconds, value)
        else:
            await redis.set(key, value)

    async def get_value(self, key: str) -> str | None:
        redis = await self._ensure_connected()
        return await redis.get(key)

    async def pop_value(self, key: str) -> str | None:
        """Atomically read and delete a value (GETDEL).

        Returns:
            The removed value, or None if the key did not exist
        """
        redis = await self._ensure_connected()
        return await redis.getdel(key)

    async def delete_value(self, key: str) -> None:
        redis = await self._ensure_connected()
        await redis.delete(key)


# Global instance (created at startup, not at import)
# Guarded by _redis_lock
_redis_client: RedisClient | None = None
_redis_state: _RedisLifecycleState = _RedisLifecycleState.UNINITIALIZED
_redis_lock: asyncio.Lock = asyncio.Lock()


async def init_redis(redis_url: str) -> RedisClient:
    """Initialize the global Redis client.

    Idempotent: calling it again while initialized returns the existing
    client without creating a new one.

    State transitions:
    - UNINITIALIZED -> INITIALIZED: Creates new client and connects
    - INITIALIZED -> INITIALIZED: Returns existing client (no-op)
    - CLOSED -> INITIALIZED: Creates new client and connects (allows restart)
    """
    global _redis_client, _redis_state

    async with _redis_lock:
        if _redis_state == _RedisLifecycleState.INITIALIZED:
            assert _redis_client is not None
            logger.debug("Redis already initialized, returning existing client")
            return _redis_client

        logger.info("Initializing Redis client (current state: %s)", _redis_state.name)
        _redis_client = RedisClient(redis_url)
        await _redis_client.connect()
        _redis_state = _RedisLifecycleState.INITIALIZED
        logger.info("Redis client initialized successfully")
        return _redis_client


async def close_redis() -> None:
    """Close the global Redis client. Safe to call when not initialized."""
    global _redis_client, _redis_state

    async with _redis_lock:
        if _redis_state != _RedisLifecycleState.INITIALIZED:
            logger.debug("Redis not initialized (state: %s), nothing to close", _redis_state.name)
            return

        logger.info("Closing Redis client")
        if _redis_client is not None:
            await _redis_client.disconnect()
            _redis_client = None
        _redis_state = _RedisLifecycleState.CLOSED
        logger.info("Redis client closed successfully")


def get_redis() -> RedisClient:
    """Get the global async Redis client.

    Raises:
        RuntimeError: If the client is not initialized
    """
    if _redis_state != _RedisLifecycleState.INITIALIZED or _redis_client is None:
        raise RuntimeError("Redis client not initialized. Call init_redis() first.")
    return _redis_client


def _reset_for_testing() -> None:
    """Drop the global client without closing it. Tests only."""
    global _redis_client, _redis_state, _redis_lock
    _redis_client = None
    _redis_state = _RedisLifecycleState.UNINITIALIZED
    _redis_lock = asyncio.Lock()
