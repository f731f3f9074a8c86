"""
services/sessions.py

Binds a token to a faculty account for a bounded lifetime.

Two strategies sit behind one `SessionProvider` interface and the
deployment picks one with SESSION_STRATEGY:

- "opaque": random id stored in the `sessions` table. Logout deletes the row,
  so revocation is immediate. Fits long-running servers with a database.
- "jwt": signed claim set, nothing stored. Logout is client-side only and a
  token stays valid until `exp`. Fits serverless targets.

Both enforce expiry on every validate call; an expired session is
indistinguishable from no session at all.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pbl_toolkit.core.config import Settings, get_settings
from pbl_toolkit.core.exceptions import ConfigurationError
from pbl_toolkit.core.security import (
    create_signed_token,
    decode_signed_token,
    generate_session_id,
)
from pbl_toolkit.db.database import get_db
from pbl_toolkit.db.models import AuthSession, Faculty

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes even for timezone=True columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class SessionInfo:
    """What a validated token resolves to."""
    faculty_id: int
    expires_at: datetime
    token: str
    strategy: str


@dataclass
class IssuedSession:
    token: str
    expires_at: datetime
    strategy: str


class SessionProvider(ABC):
    strategy: str = ""

    @abstractmethod
    async def issue(self, faculty: Faculty) -> IssuedSession:
        ...

    @abstractmethod
    async def validate(self, token: str) -> Optional[SessionInfo]:
        ...

    @abstractmethod
    async def revoke(self, token: str) -> bool:
        ...


class OpaqueSessionProvider(SessionProvider):
    """Server-side sessions backed by the `sessions` table."""

    strategy = "opaque"

    def __init__(self, db: AsyncSession, ttl: timedelta) -> None:
        self._db = db
        self._ttl = ttl

    async def issue(self, faculty: Faculty) -> IssuedSession:
        expires_at = utcnow() + self._ttl
        row = AuthSession(
            id=generate_session_id(),
            faculty_id=faculty.id,
            expires_at=expires_at,
        )
        self._db.add(row)
        await self._db.flush()

        logger.info(f"Session issued for faculty {faculty.id} | expires: {expires_at.isoformat()}")
        return IssuedSession(token=row.id, expires_at=expires_at, strategy=self.strategy)

    async def validate(self, token: str) -> Optional[SessionInfo]:
        if not token:
            return None

        result = await self._db.execute(select(AuthSession).where(AuthSession.id == token))
        row: Optional[AuthSession] = result.scalar_one_or_none()
        if row is None:
            return None

        expires_at = as_utc(row.expires_at)
        if utcnow() >= expires_at:
            # Another request may already have removed it; zero rows is fine.
            # Committed here because the caller is about to answer 401, which
            # rolls back the request session.
            await self._db.execute(delete(AuthSession).where(AuthSession.id == token))
            await self._db.commit()
            logger.info(f"Expired session for faculty {row.faculty_id} purged on read.")
            return None

        return SessionInfo(
            faculty_id=row.faculty_id,
            expires_at=expires_at,
            token=token,
            strategy=self.strategy,
        )

    async def revoke(self, token: str) -> bool:
        result = await self._db.execute(delete(AuthSession).where(AuthSession.id == token))
        await self._db.flush()
        return (result.rowcount or 0) > 0

    async def purge_expired(self) -> int:
        result = await self._db.execute(
            delete(AuthSession).where(AuthSession.expires_at <= utcnow())
        )
        await self._db.flush()
        purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} expired session(s).")
        return purged


class SignedTokenProvider(SessionProvider):
    """Stateless signed tokens. There is no server-side kill switch before `exp`."""

    strategy = "jwt"

    def __init__(self, secret: Optional[str], ttl: timedelta, algorithm: str = "HS256") -> None:
        if not secret:
            raise ConfigurationError("SESSION_SECRET or JWT_SECRET must be set for signed-token sessions")
        self._secret = secret
        self._ttl = ttl
        self._algorithm = algorithm

    async def issue(self, faculty: Faculty) -> IssuedSession:
        now = utcnow()
        token = create_signed_token(
            {"facultyId": faculty.id, "email": faculty.email, "role": faculty.role},
            self._secret,
            self._ttl,
            self._algorithm,
        )
        return IssuedSession(token=token, expires_at=now + self._ttl, strategy=self.strategy)

    async def validate(self, token: str) -> Optional[SessionInfo]:
        if not token:
            return None
        claims = decode_signed_token(token, self._secret, self._algorithm)
        if not claims:
            return None
        try:
            faculty_id = int(claims["facultyId"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Signed token rejected: missing facultyId claim.")
            return None
        return SessionInfo(
            faculty_id=faculty_id,
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            token=token,
            strategy=self.strategy,
        )

    async def revoke(self, token: str) -> bool:
        # Nothing to delete: the client discards the token.
        return False


def build_session_provider(settings: Settings, db: AsyncSession) -> SessionProvider:
    ttl = timedelta(hours=settings.session_ttl_hours)
    if settings.session_strategy == "jwt":
        return SignedTokenProvider(settings.session_secret, ttl, settings.jwt_algorithm)
    return OpaqueSessionProvider(db, ttl)


async def get_session_provider(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SessionProvider:
    """FastAPI dependency returning the configured provider for this request."""
    return build_session_provider(settings, db)
