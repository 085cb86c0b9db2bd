"""Tests for the Redis singleton lifecycle.

from_url() does not open a connection, so no server is needed here.
"""

import asyncio

import pytest

from careadmin.infrastructure import redis

REDIS_URL = "redis://localhost:6379/0"


@pytest.fixture(autouse=True)
def reset_redis():
    redis._reset_for_testing()
    yield
    redis._reset_for_testing()


@pytest.mark.anyio
async def test_init_redis_is_idempotent() -> None:
    """Calling init_redis() twice returns the same client."""
    try:
        client1 = await redis.init_redis(REDIS_URL)
        client2 = await redis.init_redis(REDIS_URL)

        assert client1 is client2
        assert redis._redis_state == redis._RedisLifecycleState.INITIALIZED
    finally:
        await redis.close_redis()


@pytest.mark.anyio
async def test_close_redis_is_idempotent() -> None:
    await redis.init_redis(REDIS_URL)

    await redis.close_redis()
    assert redis._redis_state == redis._RedisLifecycleState.CLOSED
    assert redis._redis_client is None

    await redis.close_redis()
    assert redis._redis_state == redis._RedisLifecycleState.CLOSED


@pytest.mark.anyio
async def test_close_without_init_is_safe() -> None:
    await redis.close_redis()
    assert redis._redis_state == redis._RedisLifecycleState.UNINITIALIZED


@pytest.mark.anyio
async def test_get_redis_after_close_raises_error() -> None:
    await redis.init_redis(REDIS_URL)
    assert redis.get_redis() is not None
    await redis.close_redis()

    with pytest.raises(RuntimeError, match="not initialized"):
        redis.get_redis()


def test_get_redis_before_init_raises_error() -> None:
    with pytest.raises(RuntimeError, match="not initialized"):
        redis.get_redis()


@pytest.mark.anyio
async def test_reinit_after_close_creates_new_client() -> None:
    try:
        client1 = await redis.init_redis(REDIS_URL)
        await redis.close_redis()
        client2 = await redis.init_redis(REDIS_URL)

        assert client2 is not client1
        assert redis.get_redis() is client2
    finally:
        await redis.close_redis()


@pytest.mark.anyio
async def test_concurrent_init_creates_single_client() -> None:
    try:
        clients = await asyncio.gather(*(redis.init_redis(REDIS_URL) for _ in range(10)))
        assert all(client is clients[0] for client in clients)
    finally:
        await redis.close_redis()
