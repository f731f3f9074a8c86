"""
services/token_cache.py

Caches one expiring external credential (e.g. the GitHub connector access
token) and refetches it when stale.

Concurrent callers that find the cache stale share a single fetch: the
first takes the lock and fetches, the rest wait on the lock and then find
a fresh value.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CachedToken:
    value: str
    expires_at: Optional[datetime]  # None = no expiry advertised


TokenFetcher = Callable[[], Awaitable[CachedToken]]


class ExpiringTokenCache:
    def __init__(
        self,
        fetcher: TokenFetcher,
        skew: timedelta = timedelta(seconds=30),
        clock: Callable[[], datetime] = None,
    ) -> None:
        self._fetcher = fetcher
        self._skew = skew
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cached: Optional[CachedToken] = None
        self._lock = asyncio.Lock()

    def _is_fresh(self, token: Optional[CachedToken]) -> bool:
        if token is None:
            return False
        if token.expires_at is None:
            return True
        return self._clock() + self._skew < token.expires_at

    async def get(self) -> str:
        cached = self._cached
        if self._is_fresh(cached):
            return cached.value

        async with self._lock:
            # Another caller may have refreshed while we waited.
            if self._is_fresh(self._cached):
                return self._cached.value
            token = await self._fetcher()
            self._cached = token
            logger.info("External access token refreshed.")
            return token.value

    def invalidate(self) -> None:
        self._cached = None
