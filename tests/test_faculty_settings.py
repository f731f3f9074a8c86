"""
Faculty self-service: profile edits and the personal OpenAI key.
"""

import asyncio

from sqlalchemy import select

from pbl_toolkit.core.crypto import decrypt_secret, is_encrypted_format
from pbl_toolkit.db.models import Faculty

API_KEY = "sk-abcdefghijklmnopqrst"


def _stored_key(session_factory, faculty_id: int):
    async def _load():
        async with session_factory() as s:
            return (await s.execute(select(Faculty.openai_api_key).where(Faculty.id == faculty_id))).scalar_one()

    return asyncio.run(_load())


class TestProfile:
    def test_owner_updates_profile(self, client, make_account, login):
        ann = make_account("ann@example.edu")
        headers = login("ann@example.edu")
        resp = client.put(
            f"/api/faculty/{ann.id}",
            json={"title": "Professor of Practice", "bio": "Teaches design studios."},
            headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["title"] == "Professor of Practice"
        assert body["bio"] == "Teaches design studios."
        assert body["department"] == "Computer Science"

    def test_owner_cannot_change_role_or_status(self, client, make_account, login):
        ann = make_account("ann@example.edu")
        headers = login("ann@example.edu")
        resp = client.put(
            f"/api/faculty/{ann.id}",
            json={"role": "super_admin", "status": "approved", "name": "Ann"},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "instructor"

    def test_blank_name_rejected(self, client, make_account, login):
        ann = make_account("ann@example.edu", name="Ann Lee")
        headers = login("ann@example.edu")
        resp = client.put(f"/api/faculty/{ann.id}", json={"name": "   "}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["errors"] == [{"field": "name", "message": "Value error, Name is required"}]
        assert client.get(f"/api/faculty/{ann.id}", headers=headers).json()["name"] == "Ann Lee"

    def test_name_is_trimmed(self, client, make_account, login):
        ann = make_account("ann@example.edu")
        headers = login("ann@example.edu")
        resp = client.put(f"/api/faculty/{ann.id}", json={"name": "  Ann Lee  "}, headers=headers)
        assert resp.json()["name"] == "Ann Lee"


class TestApiKeyScenario:
    def test_put_get_delete(self, client, make_account, login, session_factory):
        ann = make_account("ann@example.edu")
        headers = login("ann@example.edu")

        resp = client.put(f"/api/faculty/{ann.id}/api-key", json={"apiKey": API_KEY}, headers=headers)
        assert resp.status_code == 200
        assert API_KEY not in resp.text

        resp = client.get(f"/api/faculty/{ann.id}/settings", headers=headers)
        assert resp.json() == {"hasApiKey": True}
        assert API_KEY not in resp.text

        stored = _stored_key(session_factory, ann.id)
        assert stored != API_KEY
        assert is_encrypted_format(stored)
        assert decrypt_secret(stored) == API_KEY

        resp = client.delete(f"/api/faculty/{ann.id}/api-key", headers=headers)
        assert resp.status_code == 200
        assert client.get(f"/api/faculty/{ann.id}/settings", headers=headers).json() == {"hasApiKey": False}
        assert _stored_key(session_factory, ann.id) is None

    def test_profile_never_carries_key(self, client, make_account, login):
        ann = make_account("ann@example.edu")
        headers = login("ann@example.edu")
        client.put(f"/api/faculty/{ann.id}/api-key", json={"apiKey": API_KEY}, headers=headers)
        assert API_KEY not in client.get(f"/api/faculty/{ann.id}", headers=headers).text
        assert API_KEY not in client.get("/api/auth/me", headers=headers).text

    def test_rejects_malformed_keys(self, client, make_account, login):
        ann = make_account("ann@example.edu")
        headers = login("ann@example.edu")
        for bad in ["sk-short", "pk-abcdefghijklmnopqrst", "   "]:
            resp = client.put(f"/api/faculty/{ann.id}/api-key", json={"apiKey": bad}, headers=headers)
            assert resp.status_code == 400, bad

    def test_malformed_key_lists_every_problem(self, client, make_account, login):
        ann = make_account("ann@example.edu")
        headers = login("ann@example.edu")
        resp = client.put(f"/api/faculty/{ann.id}/api-key", json={"apiKey": "pk-short"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json() == {
            "detail": "Invalid API key",
            "errors": [
                {"field": "apiKey", "message": "API key must be at least 20 characters"},
                {"field": "apiKey", "message": "API key must start with 'sk-'"},
            ],
        }

    def test_only_owner_manages_key(self, client, make_account, login, admin_headers):
        ann = make_account("ann@example.edu")
        make_account("ben@example.edu")
        ben = login("ben@example.edu")

        assert client.put(f"/api/faculty/{ann.id}/api-key", json={"apiKey": API_KEY}, headers=ben).status_code == 403
        assert client.get(f"/api/faculty/{ann.id}/settings", headers=ben).status_code == 403
        # Admins can read profiles but not another member's key settings.
        assert client.get(f"/api/faculty/{ann.id}/settings", headers=admin_headers).status_code == 403
