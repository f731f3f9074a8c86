"""
OpenAI and GitHub connector tests with httpx mocked by respx.
"""

import httpx
import pytest
import respx

from pbl_toolkit.core.config import get_settings
from pbl_toolkit.core.exceptions import IntegrationError
from pbl_toolkit.integrations.github_connector import GitHubConnector
from pbl_toolkit.integrations.openai_client import OpenAIClient

VALID_KEY = "sk-abcdefghijklmnopqrst"
MODELS_URL = "https://api.openai.com/v1/models"
CONNECTION_URL = "https://connectors.test/api/v2/connection"
REPOS_URL = "https://api.github.com/user/repos"

REPO = {
    "id": 1,
    "name": "capstone",
    "full_name": "wpi/capstone",
    "private": False,
    "html_url": "https://github.com/wpi/capstone",
    "default_branch": "main",
    "updated_at": "2026-09-01T12:00:00Z",
}


def _connection(token: str, expires_at: str = "2099-01-01T00:00:00Z") -> httpx.Response:
    return httpx.Response(200, json={"items": [{"settings": {"access_token": token, "expires_at": expires_at}}]})


@pytest.fixture
def github_settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "connectors_hostname", "connectors.test")
    monkeypatch.setattr(settings, "connector_identity", "repl test-identity")
    return settings


# ─── OpenAI ───────────────────────────────────────────────────────────────────

class TestOpenAIClient:
    @respx.mock
    async def test_accepted_key(self):
        route = respx.get(MODELS_URL).mock(return_value=httpx.Response(200, json={"data": []}))
        client = OpenAIClient()
        assert await client.verify_key(VALID_KEY) is True
        assert route.calls.last.request.headers["Authorization"] == f"Bearer {VALID_KEY}"
        await client.close()

    @respx.mock
    async def test_rejected_key(self):
        respx.get(MODELS_URL).mock(return_value=httpx.Response(401, json={"error": {}}))
        client = OpenAIClient()
        assert await client.verify_key(VALID_KEY) is False
        await client.close()

    @respx.mock
    async def test_upstream_failure_is_not_a_verdict(self):
        respx.get(MODELS_URL).mock(return_value=httpx.Response(500))
        client = OpenAIClient()
        with pytest.raises(IntegrationError):
            await client.verify_key(VALID_KEY)
        await client.close()

    @respx.mock
    async def test_network_failure(self):
        respx.get(MODELS_URL).mock(side_effect=httpx.ConnectError("boom"))
        client = OpenAIClient()
        with pytest.raises(IntegrationError):
            await client.verify_key(VALID_KEY)
        await client.close()


class TestOpenAIEndpoints:
    @respx.mock
    def test_test_endpoint(self, client, make_account, login):
        respx.get(MODELS_URL).mock(return_value=httpx.Response(401))
        make_account("ann@example.edu")
        headers = login("ann@example.edu")
        resp = client.post("/api/openai/test", json={"apiKey": VALID_KEY}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["valid"] is False

    def test_test_endpoint_checks_shape_before_calling_out(self, client, make_account, login):
        make_account("ann@example.edu")
        headers = login("ann@example.edu")
        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(MODELS_URL).mock(return_value=httpx.Response(200))
            resp = client.post("/api/openai/test", json={"apiKey": "sk-short"}, headers=headers)
        assert resp.status_code == 400
        assert not route.called

    def test_test_endpoint_requires_auth(self, client):
        assert client.post("/api/openai/test", json={"apiKey": VALID_KEY}).status_code == 401

    def test_status_prefers_personal_key(self, client, make_account, login, admin_headers):
        ann = make_account("ann@example.edu")
        headers = login("ann@example.edu")

        assert client.get("/api/openai/status", headers=headers).json() == {"configured": False, "source": None}

        client.put("/api/admin/settings/openai-key", json={"apiKey": "sk-systemdefaultkey123456"}, headers=admin_headers)
        assert client.get("/api/openai/status", headers=headers).json() == {"configured": True, "source": "system"}

        client.put(f"/api/faculty/{ann.id}/api-key", json={"apiKey": VALID_KEY}, headers=headers)
        assert client.get("/api/openai/status", headers=headers).json() == {"configured": True, "source": "personal"}


# ─── GitHub ───────────────────────────────────────────────────────────────────

class TestGitHubConnector:
    @respx.mock
    async def test_lists_repositories_and_caches_token(self, github_settings):
        conn = respx.get(CONNECTION_URL).mock(return_value=_connection("gh-token-1"))
        repos = respx.get(REPOS_URL).mock(return_value=httpx.Response(200, json=[REPO]))

        connector = GitHubConnector()
        assert await connector.list_repositories() == [REPO]
        assert await connector.list_repositories() == [REPO]

        assert conn.call_count == 1
        assert conn.calls.last.request.headers["X_REPLIT_TOKEN"] == "repl test-identity"
        assert repos.calls.last.request.headers["Authorization"] == "Bearer gh-token-1"
        await connector.close()

    @respx.mock
    async def test_refreshes_token_once_on_401(self, github_settings):
        respx.get(CONNECTION_URL).mock(side_effect=[_connection("stale"), _connection("fresh")])
        repos = respx.get(REPOS_URL).mock(side_effect=[httpx.Response(401), httpx.Response(200, json=[REPO])])

        connector = GitHubConnector()
        assert await connector.list_repositories() == [REPO]
        assert repos.calls[1].request.headers["Authorization"] == "Bearer fresh"
        await connector.close()

    @respx.mock
    async def test_token_without_expiry_is_not_reused(self, github_settings):
        conn = respx.get(CONNECTION_URL).mock(
            return_value=httpx.Response(200, json={"items": [{"settings": {"access_token": "t"}}]})
        )
        respx.get(REPOS_URL).mock(return_value=httpx.Response(200, json=[]))

        connector = GitHubConnector()
        await connector.list_repositories()
        await connector.list_repositories()
        assert conn.call_count == 2
        await connector.close()

    @respx.mock
    async def test_oauth_credentials_shape(self, github_settings):
        respx.get(CONNECTION_URL).mock(return_value=httpx.Response(200, json={
            "items": [{"settings": {"oauth": {"credentials": {"access_token": "oauth-token"}}}}]
        }))
        repos = respx.get(REPOS_URL).mock(return_value=httpx.Response(200, json=[]))

        connector = GitHubConnector()
        await connector.list_repositories()
        assert repos.calls.last.request.headers["Authorization"] == "Bearer oauth-token"
        await connector.close()

    @respx.mock
    async def test_not_connected(self, github_settings):
        respx.get(CONNECTION_URL).mock(return_value=httpx.Response(200, json={"items": []}))
        connector = GitHubConnector()
        with pytest.raises(IntegrationError) as exc_info:
            await connector.list_repositories()
        assert exc_info.value.status_code == 503
        await connector.close()

    async def test_not_configured(self):
        connector = GitHubConnector()
        assert connector.is_configured is False
        with pytest.raises(IntegrationError) as exc_info:
            await connector.list_repositories()
        assert exc_info.value.status_code == 503
        await connector.close()


class TestGitHubEndpoint:
    def test_not_configured_is_503(self, client, admin_headers):
        resp = client.get("/api/github/repositories", headers=admin_headers)
        assert resp.status_code == 503

    def test_instructor_forbidden(self, client, make_account, login):
        make_account("ann@example.edu")
        headers = login("ann@example.edu")
        assert client.get("/api/github/repositories", headers=headers).status_code == 403

    @respx.mock
    def test_lists_repositories(self, client, admin_headers, github_settings):
        respx.get(CONNECTION_URL).mock(return_value=_connection("gh-token"))
        respx.get(REPOS_URL).mock(return_value=httpx.Response(200, json=[REPO]))

        resp = client.get("/api/github/repositories", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 1
        assert body["repositories"][0]["fullName"] == "wpi/capstone"
        assert body["repositories"][0]["htmlUrl"] == "https://github.com/wpi/capstone"
