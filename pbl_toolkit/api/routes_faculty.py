"""
api/routes_faculty.py

Faculty self-service: profile and personal OpenAI key.

Owners may read and change their own record. Admins may read any profile
but not edit it here, and nobody can read a stored API key back, only
whether one is present.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pbl_toolkit.api.deps import Principal, ensure_owner, ensure_owner_or_admin, get_principal
from pbl_toolkit.db.database import get_db
from pbl_toolkit.models.schemas import (
    ApiKeyUpdate,
    FacultyProfile,
    FacultySettings,
    FacultyUpdate,
    MessageResponse,
)
from pbl_toolkit.services import api_keys
from pbl_toolkit.services.registration import RegistrationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/faculty", tags=["Faculty"])


@router.get("/{faculty_id}", response_model=FacultyProfile)
async def get_faculty(
    faculty_id: int,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> FacultyProfile:
    ensure_owner_or_admin(principal, faculty_id)
    faculty = await RegistrationWorkflow(db).get_or_404(faculty_id)
    return FacultyProfile.model_validate(faculty)


@router.put("/{faculty_id}", response_model=FacultyProfile)
async def update_faculty(
    faculty_id: int,
    payload: FacultyUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> FacultyProfile:
    ensure_owner(principal, faculty_id)
    faculty = principal.faculty

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(faculty, field, value)
    await db.flush()

    logger.info(f"Faculty {faculty.id} updated profile fields: {sorted(changes)}")
    return FacultyProfile.model_validate(faculty)


# ─── Settings / API Key ───────────────────────────────────────────────────────

@router.get("/{faculty_id}/settings", response_model=FacultySettings)
async def get_settings_view(
    faculty_id: int,
    principal: Principal = Depends(get_principal),
) -> FacultySettings:
    ensure_owner(principal, faculty_id)
    return FacultySettings(has_api_key=api_keys.has_personal_key(principal.faculty))


@router.put("/{faculty_id}/api-key", response_model=MessageResponse)
async def set_api_key(
    faculty_id: int,
    payload: ApiKeyUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    ensure_owner(principal, faculty_id)
    await api_keys.store_personal_key(db, principal.faculty, payload.api_key)
    return MessageResponse(message="API key saved successfully")


@router.delete("/{faculty_id}/api-key", response_model=MessageResponse)
async def delete_api_key(
    faculty_id: int,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    ensure_owner(principal, faculty_id)
    await api_keys.clear_personal_key(db, principal.faculty)
    return MessageResponse(message="API key removed successfully")
