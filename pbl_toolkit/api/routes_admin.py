"""
api/routes_admin.py

Account review and system settings for admins.

Every route requires an approved, active account whose role implies
MANAGE_USERS. Rules that depend on the actor (only super_admin may hand out
super_admin; admins cannot deactivate themselves) live in the workflow, so
they apply no matter which route triggers the change.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from pbl_toolkit.api.deps import Principal, require_admin, require_capability
from pbl_toolkit.core.roles import AccountStatus, Capability
from pbl_toolkit.db.database import get_db
from pbl_toolkit.db.models import Faculty
from pbl_toolkit.models.schemas import (
    AdminCreateUser,
    AdminUserView,
    ApiKeyUpdate,
    MessageResponse,
    RoleUpdate,
    StatusChangeResponse,
    SystemKeyStatus,
)
from pbl_toolkit.services import api_keys
from pbl_toolkit.services.registration import RegistrationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Administration"])

require_settings_admin = require_capability(Capability.MANAGE_SYSTEM_SETTINGS, "Admin access required")


async def _views(workflow: RegistrationWorkflow, accounts: List[Faculty]) -> List[AdminUserView]:
    counts = await workflow.login_counts([a.id for a in accounts])
    return [
        AdminUserView.model_validate(a).model_copy(update={"login_count": counts.get(a.id, 0)})
        for a in accounts
    ]


async def _status_change(workflow: RegistrationWorkflow, faculty: Faculty) -> StatusChangeResponse:
    views = await _views(workflow, [faculty])
    return StatusChangeResponse(success=True, user=views[0])


# ─── Users ────────────────────────────────────────────────────────────────────

@router.get("/users", response_model=List[AdminUserView])
async def list_users(
    status_filter: Optional[AccountStatus] = Query(None, alias="status"),
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[AdminUserView]:
    workflow = RegistrationWorkflow(db)
    return await _views(workflow, await workflow.list_accounts(status_filter))


@router.get("/users/pending", response_model=List[AdminUserView])
async def list_pending_users(
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[AdminUserView]:
    workflow = RegistrationWorkflow(db)
    return await _views(workflow, await workflow.list_pending())


@router.post("/users", response_model=AdminUserView, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: AdminCreateUser,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminUserView:
    faculty = await RegistrationWorkflow(db).create_by_admin(payload, principal.faculty)
    return AdminUserView.model_validate(faculty)


@router.post("/users/{faculty_id}/approve", response_model=StatusChangeResponse)
async def approve_user(
    faculty_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> StatusChangeResponse:
    workflow = RegistrationWorkflow(db)
    faculty = await workflow.approve(faculty_id, principal.faculty)
    return await _status_change(workflow, faculty)


@router.post("/users/{faculty_id}/reject", response_model=StatusChangeResponse)
async def reject_user(
    faculty_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> StatusChangeResponse:
    workflow = RegistrationWorkflow(db)
    faculty = await workflow.reject(faculty_id, principal.faculty)
    return await _status_change(workflow, faculty)


@router.patch("/users/{faculty_id}/role", response_model=StatusChangeResponse)
async def change_user_role(
    faculty_id: int,
    payload: RoleUpdate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> StatusChangeResponse:
    workflow = RegistrationWorkflow(db)
    faculty = await workflow.change_role(faculty_id, payload.role, principal.faculty)
    return await _status_change(workflow, faculty)


@router.post("/users/{faculty_id}/deactivate", response_model=StatusChangeResponse)
async def deactivate_user(
    faculty_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> StatusChangeResponse:
    workflow = RegistrationWorkflow(db)
    faculty = await workflow.set_active(faculty_id, False, principal.faculty)
    return await _status_change(workflow, faculty)


@router.post("/users/{faculty_id}/activate", response_model=StatusChangeResponse)
async def activate_user(
    faculty_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> StatusChangeResponse:
    workflow = RegistrationWorkflow(db)
    faculty = await workflow.set_active(faculty_id, True, principal.faculty)
    return await _status_change(workflow, faculty)


# ─── System OpenAI Key ────────────────────────────────────────────────────────

@router.get("/settings/openai-key", response_model=SystemKeyStatus)
async def get_system_openai_key(
    principal: Principal = Depends(require_settings_admin),
    db: AsyncSession = Depends(get_db),
) -> SystemKeyStatus:
    setting = await api_keys.get_system_key_setting(db)
    return SystemKeyStatus(
        has_api_key=api_keys.has_system_key(setting),
        updated_by=setting.updated_by if setting else None,
        updated_at=setting.updated_at if setting else None,
    )


@router.put("/settings/openai-key", response_model=MessageResponse)
async def set_system_openai_key(
    payload: ApiKeyUpdate,
    principal: Principal = Depends(require_settings_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await api_keys.set_system_key(db, payload.api_key, principal.faculty)
    return MessageResponse(message="System API key saved successfully")


@router.delete("/settings/openai-key", response_model=MessageResponse)
async def delete_system_openai_key(
    principal: Principal = Depends(require_settings_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await api_keys.clear_system_key(db, principal.faculty)
    return MessageResponse(message="System API key removed successfully")
