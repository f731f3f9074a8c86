"""
middleware/logging.py

Per-request logging and counters.

The Redis client is read from request.app.state on every request rather than
captured at construction time. The middleware is registered when the app is
built, before the lifespan has connected anything, so a lazy lookup is the
only way it sees the initialised client. When Redis is absent the counters
are skipped and requests are still logged.

Only method, path, status and latency are logged. Request bodies and
headers carry passwords, API keys and session tokens and are never written.
"""

import time
import uuid
import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Health checks and docs would drown out real traffic.
_SKIP_LOG_PATHS = {"/", "/health", "/docs", "/redoc", "/openapi.json"}

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, logs the outcome and updates Redis counters."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        if request.url.path in _SKIP_LOG_PATHS:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        redis_client = getattr(request.app.state, "redis_client", None)
        start_time = time.time()
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            latency_ms = round((time.time() - start_time) * 1000, 2)
            logger.error(f"[{request_id}] {method} {path} raised {type(e).__name__} after {latency_ms}ms")
            await self._update_metrics(redis_client, method, 500)
            raise

        latency_ms = round((time.time() - start_time) * 1000, 2)
        status_code = response.status_code
        log = logger.warning if status_code >= 500 else logger.info
        log(
            f"[{request_id}] {method} {path} -> {status_code} "
            f"({latency_ms}ms) client={self._get_client_ip(request)}"
        )
        await self._update_metrics(redis_client, method, status_code)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    # ─────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────

    def _get_client_ip(self, request: Request) -> str:
        for header in ("x-forwarded-for", "x-real-ip"):
            val = request.headers.get(header)
            if val:
                return val.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    async def _update_metrics(self, redis_client, method: str, status_code: int) -> None:
        if not redis_client:
            return
        # RedisClient already returns None on failure, so no error handling here.
        await redis_client.increment("requests:total")
        await redis_client.increment(f"requests:{method}")
        if status_code >= 400:
            await redis_client.increment("errors:total")
            await redis_client.increment(f"errors:{status_code}")
