"""
integrations/redis_client.py

Shared Redis connection for the request counters written by the logging
middleware and the fixed-window counters behind rate-limited endpoints.

Redis is optional. When it cannot be reached at startup the client stays
disconnected and `increment` answers None, which callers read as "count
locally instead".
"""

import logging
from typing import Optional

import redis.asyncio as redis

from pbl_toolkit.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class RedisClient:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._client: Optional[redis.Redis] = None

    @property
    def url_for_logs(self) -> str:
        return f"{self._settings.redis_host}:{self._settings.redis_port}/{self._settings.redis_db}"

    async def connect(self) -> None:
        """Opens the pool and pings once; leaves the client disconnected on failure."""
        client = redis.Redis(
            host=self._settings.redis_host,
            port=self._settings.redis_port,
            db=self._settings.redis_db,
            password=self._settings.redis_password,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        try:
            await client.ping()
        except Exception as e:
            logger.error(f"Redis unreachable at {self.url_for_logs}: {e}")
            await client.aclose()
            return
        self._client = client
        logger.info(f"Redis connected at {self.url_for_logs}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def is_connected(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except Exception:
            return False

    # ─── Counters ─────────────────────────────────────────────────────────────

    async def increment(
        self,
        key: str,
        amount: int = 1,
        expire: Optional[int] = None,
        only_set_expiry_on_create: bool = False,
    ) -> Optional[int]:
        """
        INCRBY plus an optional EXPIRE in one round trip.

        With `only_set_expiry_on_create` the TTL is set only while the key has
        none (EXPIRE NX), so the first hit opens a window that later hits do
        not extend.

        Returns the new value, or None when Redis is unavailable.
        """
        if self._client is None:
            return None

        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.incrby(key, amount)
            if expire:
                pipe.expire(key, expire, nx=only_set_expiry_on_create)
            result = await pipe.execute()
            return int(result[0])
        except Exception as e:
            logger.error(f"Redis counter {key} not updated: {e}")
            return None
