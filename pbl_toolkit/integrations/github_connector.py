"""
integrations/github_connector.py

Read-only GitHub access through the hosting platform's connector service.

The platform brokers the OAuth grant: we ask the connectors host for the
current GitHub connection and receive a short-lived access token with an
`expires_at`. Tokens are cached in an ExpiringTokenCache and re-fetched when
stale, or once on a 401 from GitHub.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from pbl_toolkit.core.config import get_settings
from pbl_toolkit.core.exceptions import IntegrationError
from pbl_toolkit.services.token_cache import CachedToken, ExpiringTokenCache

logger = logging.getLogger(__name__)


def _parse_expiry(value: Optional[str]) -> datetime:
    """
    Tokens without a usable expiry are treated as already expired, so the
    next call fetches again instead of reusing them.
    """
    now = datetime.now(timezone.utc)
    if not value:
        return now
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("GitHub connector returned an unparseable expires_at.")
        return now
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GitHubConnector:
    """
    Async client for the GitHub REST API authenticated via the connector host.
    Handles token refresh with a single retry on 401 responses.
    """

    def __init__(self, http: httpx.AsyncClient = None) -> None:
        settings = get_settings()
        self._hostname = settings.connectors_hostname
        self._identity = settings.connector_identity
        self._api_url = settings.github_api_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=15.0)
        self._tokens = ExpiringTokenCache(self._fetch_token)

    @property
    def is_configured(self) -> bool:
        return bool(self._hostname and self._identity)

    async def _fetch_token(self) -> CachedToken:
        """Ask the connectors host for the current GitHub access token."""
        try:
            resp = await self._http.get(
                f"https://{self._hostname}/api/v2/connection",
                params={"include_secrets": "true", "connector_names": "github"},
                headers={"Accept": "application/json", "X_REPLIT_TOKEN": self._identity},
            )
            resp.raise_for_status()
            items = resp.json().get("items") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"GitHub connector lookup failed: {type(e).__name__}")
            raise IntegrationError("GitHub connector unavailable")

        connection_settings = (items[0].get("settings") or {}) if items else {}
        access_token = connection_settings.get("access_token") or (
            ((connection_settings.get("oauth") or {}).get("credentials") or {}).get("access_token")
        )
        if not access_token:
            raise IntegrationError("GitHub not connected", status_code=503)

        expires_at = _parse_expiry(connection_settings.get("expires_at"))
        return CachedToken(value=access_token, expires_at=expires_at)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Wraps GitHub calls with one token refresh on 401."""
        if not self.is_configured:
            raise IntegrationError("GitHub integration is not configured", status_code=503)

        token = await self._tokens.get()
        url = f"{self._api_url}{path}"
        headers = {"Accept": "application/vnd.github+json"}

        try:
            resp = await self._http.request(
                method, url, headers={**headers, "Authorization": f"Bearer {token}"}, **kwargs
            )
            if resp.status_code == 401:
                logger.info("GitHub token rejected. Refreshing from connector...")
                self._tokens.invalidate()
                token = await self._tokens.get()
                resp = await self._http.request(
                    method, url, headers={**headers, "Authorization": f"Bearer {token}"}, **kwargs
                )
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"GitHub API request failed [{method} {path}]: {e.response.status_code}")
            raise IntegrationError(f"GitHub returned status {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"GitHub API request failed [{method} {path}]: {type(e).__name__}")
            raise IntegrationError("Could not reach GitHub")

    async def list_repositories(self, per_page: int = 100) -> List[Dict[str, Any]]:
        """Repositories visible to the connected account, most recently updated first."""
        data = await self._request(
            "GET",
            "/user/repos",
            params={"sort": "updated", "per_page": per_page},
        )
        return data if isinstance(data, list) else []

    async def close(self) -> None:
        await self._http.aclose()
