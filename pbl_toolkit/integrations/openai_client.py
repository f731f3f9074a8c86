"""
integrations/openai_client.py

Thin async client for the OpenAI REST API. The toolkit only needs to know
whether a key is accepted, so the cheapest authenticated call is used:
GET /models.

The key is passed per call and never stored on the client or logged.
"""

import logging

import httpx

from pbl_toolkit.core.config import get_settings
from pbl_toolkit.core.exceptions import IntegrationError

logger = logging.getLogger(__name__)


class OpenAIClient:
    def __init__(self, base_url: str = None, http: httpx.AsyncClient = None) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.openai_base_url).rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=15.0)

    async def verify_key(self, api_key: str) -> bool:
        """
        True when OpenAI accepts the key, False when it answers 401.
        Anything else (network failure, 5xx, throttling) is not a verdict on
        the key and raises IntegrationError.
        """
        try:
            resp = await self._http.get(
                f"{self._base_url}/models",
                headers={"Authorization": f"Bearer {api_key}"},
            )
        except httpx.TimeoutException:
            logger.error("OpenAI key verification timed out.")
            raise IntegrationError("OpenAI did not respond in time", status_code=504)
        except httpx.HTTPError as e:
            logger.error(f"OpenAI key verification failed: {type(e).__name__}")
            raise IntegrationError("Could not reach OpenAI")

        if resp.status_code == 200:
            return True
        if resp.status_code == 401:
            return False

        logger.warning(f"OpenAI returned unexpected status {resp.status_code} during key verification")
        raise IntegrationError(f"OpenAI returned status {resp.status_code}")

    async def close(self) -> None:
        await self._http.aclose()
