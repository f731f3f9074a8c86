"""
api/routes_auth.py

Authentication endpoints for the PBL Toolkit.

- Registration never grants access on its own: new accounts wait in
  `pending` until an admin approves them.
- Login answers the same "Invalid credentials" for unknown emails and wrong
  passwords, and unknown emails still pay one bcrypt verify.
- Pending and rejected accounts are told so only after the password checks
  out, so status can't be probed without the password.
- Under the opaque strategy the session id is also set as an HttpOnly
  cookie; under the signed strategy the token is returned for the client to
  keep.
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from pbl_toolkit.api.deps import Principal, get_principal
from pbl_toolkit.core.config import Settings, get_settings
from pbl_toolkit.db.database import get_db
from pbl_toolkit.models.schemas import (
    FacultyProfile,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    RegisterRequest,
    RegisterResponse,
)
from pbl_toolkit.services.registration import RegistrationWorkflow
from pbl_toolkit.services.sessions import (
    OpaqueSessionProvider,
    SessionProvider,
    get_session_provider,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


# ─── A. Register ──────────────────────────────────────────────────────────────

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a faculty account for admin approval",
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> RegisterResponse:
    faculty = await RegistrationWorkflow(db).register(payload)
    return RegisterResponse(
        id=faculty.id,
        email=faculty.email,
        name=faculty.name,
        status=faculty.status,
    )


# ─── B. Login ─────────────────────────────────────────────────────────────────

@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Authenticate and start a session",
)
async def login(
    payload: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    provider: SessionProvider = Depends(get_session_provider),
    settings: Settings = Depends(get_settings),
) -> LoginResponse:
    """
    Steps:
    1. Verify credentials and account state (401 on any failure).
    2. Issue a session through the configured provider.
    3. Record the login and, for opaque sessions, set the cookie.
    """
    workflow = RegistrationWorkflow(db)
    faculty = await workflow.authenticate(payload.email, payload.password)

    if isinstance(provider, OpaqueSessionProvider):
        # Login is a natural point to sweep rows nobody will present again.
        await provider.purge_expired()

    issued = await provider.issue(faculty)
    await workflow.record_login(faculty)

    if issued.strategy == "opaque":
        response.set_cookie(
            key=settings.session_cookie_name,
            value=issued.token,
            max_age=settings.session_ttl_hours * 3600,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
        )

    logger.info(f"Successful login: {faculty.email} | role: {faculty.role} | strategy: {issued.strategy}")

    return LoginResponse(
        session_id=issued.token if issued.strategy == "opaque" else None,
        token=issued.token if issued.strategy == "jwt" else None,
        expires_at=issued.expires_at,
        faculty=FacultyProfile.model_validate(faculty),
    )


# ─── C. Logout ────────────────────────────────────────────────────────────────

@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="End the current session",
)
async def logout(
    response: Response,
    principal: Principal = Depends(get_principal),
    provider: SessionProvider = Depends(get_session_provider),
    settings: Settings = Depends(get_settings),
) -> LogoutResponse:
    """
    Opaque sessions are deleted server-side. Signed tokens stay valid until
    they expire; the client is expected to discard them.
    """
    revoked = await provider.revoke(principal.token)
    response.delete_cookie(settings.session_cookie_name)
    logger.info(f"Logout: faculty {principal.faculty_id} | revoked: {revoked}")
    return LogoutResponse(success=True)


# ─── D. Current User ──────────────────────────────────────────────────────────

@router.get(
    "/me",
    response_model=FacultyProfile,
    summary="Get the profile of the currently authenticated faculty member",
)
async def get_me(principal: Principal = Depends(get_principal)) -> FacultyProfile:
    return FacultyProfile.model_validate(principal.faculty)
