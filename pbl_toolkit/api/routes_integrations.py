"""
api/routes_integrations.py

Outbound integrations: OpenAI key checks and the GitHub connector.

Clients live on app.state (created in the lifespan) and are created on first
use when the app runs without one, e.g. under a test client that skips the
lifespan.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pbl_toolkit.api.deps import Principal, get_principal, require_capability
from pbl_toolkit.core.config import get_settings
from pbl_toolkit.core.roles import Capability
from pbl_toolkit.db.database import get_db
from pbl_toolkit.integrations.github_connector import GitHubConnector
from pbl_toolkit.integrations.openai_client import OpenAIClient
from pbl_toolkit.models.schemas import (
    ApiKeyTestRequest,
    ApiKeyTestResult,
    OpenAIKeyStatus,
    RepositoryList,
    RepositorySummary,
)
from pbl_toolkit.services import api_keys
from pbl_toolkit.services.rate_limit import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Integrations"])

_settings = get_settings()
api_key_test_limiter = FixedWindowRateLimiter(
    "openai-test",
    limit=_settings.api_key_test_limit,
    window_seconds=_settings.api_key_test_window_seconds,
)


def get_openai_client(request: Request) -> OpenAIClient:
    client = getattr(request.app.state, "openai_client", None)
    if client is None:
        client = OpenAIClient()
        request.app.state.openai_client = client
    return client


def get_github_connector(request: Request) -> GitHubConnector:
    connector = getattr(request.app.state, "github_connector", None)
    if connector is None:
        connector = GitHubConnector()
        request.app.state.github_connector = connector
    return connector


# ─── OpenAI ───────────────────────────────────────────────────────────────────

@router.post("/api/openai/test", response_model=ApiKeyTestResult)
async def test_openai_key(
    payload: ApiKeyTestRequest,
    request: Request,
    principal: Principal = Depends(get_principal),
    client: OpenAIClient = Depends(get_openai_client),
) -> ApiKeyTestResult:
    """
    Checks a candidate key against OpenAI without storing it. Throttled per
    faculty member because every call spends a request against OpenAI.
    """
    redis_client = getattr(request.app.state, "redis_client", None)
    await api_key_test_limiter.check(str(principal.faculty_id), redis_client)

    api_key = api_keys.validate_api_key_shape(payload.api_key)
    if await client.verify_key(api_key):
        return ApiKeyTestResult(valid=True, message="API key is valid")
    return ApiKeyTestResult(valid=False, message="API key was rejected by OpenAI")


@router.get("/api/openai/status", response_model=OpenAIKeyStatus)
async def openai_status(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> OpenAIKeyStatus:
    key, source = await api_keys.resolve_openai_key(db, principal.faculty)
    return OpenAIKeyStatus(configured=bool(key), source=source)


# ─── GitHub ───────────────────────────────────────────────────────────────────

@router.get("/api/github/repositories", response_model=RepositoryList)
async def list_github_repositories(
    principal: Principal = Depends(require_capability(Capability.MANAGE_INTEGRATIONS, "Admin access required")),
    connector: GitHubConnector = Depends(get_github_connector),
) -> RepositoryList:
    repos = await connector.list_repositories()
    summaries = [RepositorySummary.model_validate(r) for r in repos]
    return RepositoryList(total=len(summaries), repositories=summaries)
