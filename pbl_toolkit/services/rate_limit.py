"""
services/rate_limit.py

Fixed-window throttle for outbound API-key test calls, keyed by faculty id.

Counts live in Redis when it is connected, so every worker shares one
window. Without Redis each process keeps its own window map.
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple

from pbl_toolkit.core.exceptions import RateLimited
from pbl_toolkit.integrations.redis_client import RedisClient

logger = logging.getLogger(__name__)


class FixedWindowRateLimiter:
    def __init__(
        self,
        name: str,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._name = name
        self._clock = clock
        self._limit = limit
        self._window = window_seconds
        # key -> (window start, count)
        self._local: Dict[str, Tuple[float, int]] = {}

    def _local_hit(self, key: str) -> int:
        now = self._clock()
        started, count = self._local.get(key, (now, 0))
        if now - started >= self._window:
            started, count = now, 0
        count += 1
        self._local[key] = (started, count)
        return count

    async def hit(self, key: str, redis_client: Optional[RedisClient] = None) -> int:
        """Records one call and returns the count inside the current window."""
        count = None
        if redis_client is not None:
            count = await redis_client.increment(
                f"ratelimit:{self._name}:{key}", expire=self._window, only_set_expiry_on_create=True
            )
        if count is None:
            count = self._local_hit(key)
        return count

    async def check(self, key: str, redis_client: Optional[RedisClient] = None) -> None:
        count = await self.hit(key, redis_client)
        if count > self._limit:
            logger.warning(f"Rate limit '{self._name}' exceeded for {key} ({count}/{self._limit})")
            raise RateLimited(
                f"Too many requests. Try again in {self._window} seconds."
            )

    def reset(self) -> None:
        self._local.clear()
