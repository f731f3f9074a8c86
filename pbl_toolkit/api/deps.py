"""
api/deps.py

Route guards shared by every router.

Token lookup order: `Authorization: Bearer <token>` first, then the session
cookie. The guard resolves the token through the configured SessionProvider,
loads the account and attaches a Principal to `request.state.principal`.
Guards only read; expired opaque sessions are purged by the provider itself.

Authorization is capability-based: `require_capability(...)` asks the
caller's role whether it implies the capability, so admin and super_admin
satisfy every admin guard without listing role names at each route.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from pbl_toolkit.core.config import get_settings
from pbl_toolkit.core.roles import AccountStatus, Capability
from pbl_toolkit.db.database import get_db
from pbl_toolkit.db.models import Faculty
from pbl_toolkit.services.sessions import SessionInfo, SessionProvider, get_session_provider

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    """The authenticated caller for one request."""
    faculty: Faculty
    session: SessionInfo
    token: str

    @property
    def faculty_id(self) -> int:
        return self.faculty.id


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().session_cookie_name) or None


async def get_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    provider: SessionProvider = Depends(get_session_provider),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """
    FastAPI dependency for any authenticated route.

    Usage:
        @router.get("/protected")
        async def protected(principal: Principal = Depends(get_principal)):
            ...
    """
    token = extract_token(request, credentials)
    if not token:
        raise _unauthorized("Authentication required")

    session = await provider.validate(token)
    if session is None:
        raise _unauthorized("Invalid or expired session")

    faculty = await db.get(Faculty, session.faculty_id)
    if faculty is None:
        logger.warning(f"Session references missing faculty {session.faculty_id}")
        raise _unauthorized("Invalid or expired session")

    if not faculty.is_active:
        raise _unauthorized("Account inactive")

    principal = Principal(faculty=faculty, session=session, token=token)
    request.state.principal = principal
    return principal


require_auth = get_principal


async def require_approved(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.faculty.status_enum is not AccountStatus.APPROVED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account pending approval",
        )
    return principal


def require_capability(capability: Capability, detail: str = "Access denied"):
    """
    Factory for capability-based access control dependencies.

    Usage:
        @router.post("/users/{id}/approve")
        async def approve(principal = Depends(require_capability(Capability.MANAGE_USERS))):
            ...
    """
    async def capability_checker(
        principal: Principal = Depends(require_approved),
    ) -> Principal:
        if not principal.faculty.role_enum.implies(capability):
            logger.warning(
                f"Faculty {principal.faculty_id} ({principal.faculty.role}) denied {capability.value}"
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return principal

    return capability_checker


require_admin = require_capability(Capability.MANAGE_USERS, "Admin access required")
require_super_admin = require_capability(Capability.ASSIGN_SUPER_ADMIN, "Super admin access required")


def ensure_owner(principal: Principal, resource_owner_id: int) -> None:
    if principal.faculty_id != resource_owner_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


def ensure_owner_or_admin(principal: Principal, resource_owner_id: int) -> None:
    if principal.faculty_id == resource_owner_id:
        return
    if principal.faculty.role_enum.is_admin:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
