"""
Test configuration and fixtures for the PBL Toolkit API.

Environment is set before anything from pbl_toolkit is imported, because
settings, the bcrypt context and the engine are built at import time.
"""

import asyncio
import os
import tempfile
from datetime import datetime, timezone
from typing import AsyncGenerator, Callable, Dict

_TEST_DIR = tempfile.mkdtemp(prefix="pbl-toolkit-tests-")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/app.db"
os.environ["CRYPTO_SECRET"] = "test-crypto-secret-for-the-suite"
os.environ["SESSION_SECRET"] = "test-session-secret-for-the-suite"
os.environ["SESSION_STRATEGY"] = "opaque"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("CONNECTORS_HOSTNAME", None)
os.environ.pop("CONNECTOR_IDENTITY", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from pbl_toolkit.api.routes_integrations import api_key_test_limiter
from pbl_toolkit.core.roles import AccountStatus, Role
from pbl_toolkit.core.security import get_password_hash
from pbl_toolkit.db.database import Base, get_db
from pbl_toolkit.db.models import Faculty
from pbl_toolkit.main import app

DEFAULT_PASSWORD = "correct-horse-battery"

# ============================================================================
# DATABASE
# ============================================================================


@pytest.fixture
def test_engine(tmp_path):
    # NullPool: TestClient runs each request on its own event loop, so pooled
    # aiosqlite connections must not outlive a request.
    return create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", poolclass=NullPool)


async def _create_tables(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def tables(test_engine):
    """Schema for tests driven through the synchronous TestClient."""
    asyncio.run(_create_tables(test_engine))


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


@pytest.fixture
async def db(test_engine, session_factory) -> AsyncGenerator[AsyncSession, None]:
    await _create_tables(test_engine)
    async with session_factory() as session:
        yield session


# ============================================================================
# HTTP CLIENT
# ============================================================================


@pytest.fixture
def client(tables, session_factory):
    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    api_key_test_limiter.reset()
    # Lifespan does not run without the context manager; clients are created lazily.
    app.state.redis_client = None
    app.state.openai_client = None
    app.state.github_connector = None

    yield TestClient(app)

    app.dependency_overrides.clear()
    api_key_test_limiter.reset()


# ============================================================================
# ACCOUNTS
# ============================================================================


@pytest.fixture
def make_account(tables, session_factory) -> Callable[..., Faculty]:
    """Inserts an account directly, bypassing the workflow."""

    def _create(
        email: str,
        role: Role = Role.INSTRUCTOR,
        status: AccountStatus = AccountStatus.APPROVED,
        is_active: bool = None,
        password: str = DEFAULT_PASSWORD,
        name: str = None,
    ) -> Faculty:
        if is_active is None:
            is_active = status is AccountStatus.APPROVED

        async def _insert() -> Faculty:
            async with session_factory() as session:
                faculty = Faculty(
                    name=name or email.split("@")[0].title(),
                    email=email,
                    password_hash=get_password_hash(password),
                    role=role.value,
                    status=status.value,
                    is_active=is_active,
                    title="Professor",
                    department="Computer Science",
                    institution="Worcester Polytechnic Institute",
                    approved_at=datetime.now(timezone.utc) if status is AccountStatus.APPROVED else None,
                )
                session.add(faculty)
                await session.commit()
                return faculty

        return asyncio.run(_insert())

    return _create


@pytest.fixture
def login(client) -> Callable[..., Dict[str, str]]:
    """Logs in and returns the Authorization header for the new session."""

    def _login(email: str, password: str = DEFAULT_PASSWORD) -> Dict[str, str]:
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        token = body.get("sessionId") or body.get("token")
        # Tests authenticate explicitly; drop the cookie the login just set.
        client.cookies.clear()
        return {"Authorization": f"Bearer {token}"}

    return _login


@pytest.fixture
def admin_headers(make_account, login) -> Dict[str, str]:
    make_account("admin@example.edu", role=Role.ADMIN)
    return login("admin@example.edu")


@pytest.fixture
def super_admin_headers(make_account, login) -> Dict[str, str]:
    make_account("root@example.edu", role=Role.SUPER_ADMIN)
    return login("root@example.edu")
