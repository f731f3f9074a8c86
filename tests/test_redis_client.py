from unittest.mock import AsyncMock, MagicMock

import redis.exceptions

from pbl_toolkit.integrations import redis_client as redis_module
from pbl_toolkit.integrations.redis_client import RedisClient


def _connected(pipe_result=None, pipe_error=None) -> RedisClient:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=pipe_result, side_effect=pipe_error)
    client = RedisClient()
    client._client = MagicMock()
    client._client.pipeline.return_value = pipe
    return client


async def test_disconnected_client_is_neutral():
    client = RedisClient()
    assert await client.is_connected() is False
    assert await client.increment("requests:total") is None
    await client.close()


async def test_unreachable_server_leaves_client_disconnected(monkeypatch):
    fake = MagicMock()
    fake.ping = AsyncMock(side_effect=redis.exceptions.ConnectionError("refused"))
    fake.aclose = AsyncMock()
    monkeypatch.setattr(redis_module.redis, "Redis", MagicMock(return_value=fake))

    client = RedisClient()
    await client.connect()
    assert await client.is_connected() is False
    fake.aclose.assert_awaited_once()


async def test_fixed_window_increment():
    client = _connected(pipe_result=[3, True])
    assert await client.increment("ratelimit:t:7", expire=60, only_set_expiry_on_create=True) == 3

    pipe = client._client.pipeline.return_value
    pipe.incrby.assert_called_once_with("ratelimit:t:7", 1)
    pipe.expire.assert_called_once_with("ratelimit:t:7", 60, nx=True)


async def test_increment_without_expiry():
    client = _connected(pipe_result=[1])
    assert await client.increment("requests:GET") == 1
    client._client.pipeline.return_value.expire.assert_not_called()


async def test_increment_failure_returns_none():
    client = _connected(pipe_error=redis.exceptions.TimeoutError("slow"))
    assert await client.increment("errors:total") is None
