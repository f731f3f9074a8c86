"""
services/registration.py

Account lifecycle: self-registration, admin review, login gating.

State machine:

    register()  ──>  pending ──approve()──> approved (is_active=True)
                        └─────reject()────> rejected (is_active=False)

    create_by_admin() ──> approved (is_active=True), skipping review

Approved and rejected are terminal. Repeating the current transition
re-stamps the same fields; crossing from one terminal state to the other
is a 409. Nothing returns to pending.

Role changes and activation changes need an actor of at least the target
account's rank, so admins leave super_admin accounts alone.

Login is refused for any account that is not approved and active, whatever
the password.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pbl_toolkit.core.exceptions import (
    AuthenticationFailed,
    ConflictError,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from pbl_toolkit.core.roles import AccountStatus, Capability, Role
from pbl_toolkit.core.security import burn_hash_time, get_password_hash, verify_password
from pbl_toolkit.db.models import Faculty, UserStats
from pbl_toolkit.models.schemas import AdminCreateUser, RegisterRequest

logger = logging.getLogger(__name__)

DEFAULT_INSTITUTION = "Worcester Polytechnic Institute"


class RegistrationWorkflow:
    """Account state transitions over one request-scoped session."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # ─── Lookups ──────────────────────────────────────────────────────────────

    async def get(self, faculty_id: int) -> Optional[Faculty]:
        return await self._db.get(Faculty, faculty_id)

    async def get_or_404(self, faculty_id: int) -> Faculty:
        faculty = await self.get(faculty_id)
        if faculty is None:
            raise NotFound("User not found")
        return faculty

    async def get_by_email(self, email: str) -> Optional[Faculty]:
        result = await self._db.execute(
            select(Faculty).where(Faculty.email == email.lower().strip())
        )
        return result.scalar_one_or_none()

    async def list_accounts(self, status: Optional[AccountStatus] = None) -> List[Faculty]:
        stmt = select(Faculty).order_by(Faculty.created_at.desc(), Faculty.id.desc())
        if status is not None:
            stmt = stmt.where(Faculty.status == AccountStatus(status).value)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def list_pending(self) -> List[Faculty]:
        return await self.list_accounts(AccountStatus.PENDING)

    async def login_counts(self, faculty_ids: List[int]) -> Dict[int, int]:
        if not faculty_ids:
            return {}
        result = await self._db.execute(
            select(UserStats.faculty_id, UserStats.login_count).where(
                UserStats.faculty_id.in_(faculty_ids)
            )
        )
        return {faculty_id: count for faculty_id, count in result.all()}

    # ─── Creation ─────────────────────────────────────────────────────────────

    async def _ensure_email_free(self, email: str) -> None:
        if await self.get_by_email(email) is not None:
            raise ValidationFailed("User with this email already exists", field="email")

    async def _insert(self, faculty: Faculty) -> None:
        """A concurrent insert of the same email loses on the unique index."""
        self._db.add(faculty)
        try:
            await self._db.flush()
        except IntegrityError:
            await self._db.rollback()
            raise ValidationFailed("User with this email already exists", field="email")

    async def register(self, data: RegisterRequest) -> Faculty:
        """Self-registration always lands in pending, inactive, as an instructor."""
        await self._ensure_email_free(data.email)

        faculty = Faculty(
            name=data.name,
            email=data.email,
            password_hash=get_password_hash(data.password),
            role=Role.INSTRUCTOR.value,
            status=AccountStatus.PENDING.value,
            is_active=False,
            title=data.title or "Instructor",
            department=data.department or "General",
            institution=data.institution or DEFAULT_INSTITUTION,
            bio=data.bio or "",
        )
        await self._insert(faculty)

        logger.info(f"Registration received: {faculty.email} (id={faculty.id}) awaiting approval")
        return faculty

    async def create_by_admin(self, data: AdminCreateUser, actor: Faculty) -> Faculty:
        """Admin-created accounts are approved and active from the start."""
        if data.role is Role.SUPER_ADMIN and not actor.role_enum.implies(Capability.ASSIGN_SUPER_ADMIN):
            raise PermissionDenied("Only super admins can assign the super admin role")

        await self._ensure_email_free(data.email)

        now = datetime.now(timezone.utc)
        faculty = Faculty(
            name=data.name,
            email=data.email,
            password_hash=get_password_hash(data.password),
            role=data.role.value,
            status=AccountStatus.APPROVED.value,
            is_active=True,
            title=data.title,
            department=data.department,
            institution=data.institution,
            approved_by=actor.id,
            approved_at=now,
        )
        await self._insert(faculty)

        logger.info(f"Account {faculty.email} created by admin {actor.id} with role {faculty.role}")
        return faculty

    # ─── Review ───────────────────────────────────────────────────────────────

    def _check_transition(self, faculty: Faculty, target: AccountStatus) -> None:
        current = faculty.status_enum
        if not current.can_transition(target):
            raise ConflictError(f"Account is already {current.value}")

    def _check_rank(self, faculty: Faculty, actor: Faculty) -> None:
        if not actor.role_enum.at_least(faculty.role_enum):
            raise PermissionDenied(f"Cannot modify an account with role {faculty.role}")

    async def approve(self, faculty_id: int, actor: Faculty) -> Faculty:
        faculty = await self.get_or_404(faculty_id)
        self._check_transition(faculty, AccountStatus.APPROVED)

        faculty.status = AccountStatus.APPROVED.value
        faculty.is_active = True
        faculty.approved_by = actor.id
        faculty.approved_at = datetime.now(timezone.utc)
        await self._db.flush()

        logger.info(f"Account {faculty.email} approved by admin {actor.id}")
        return faculty

    async def reject(self, faculty_id: int, actor: Faculty) -> Faculty:
        faculty = await self.get_or_404(faculty_id)
        self._check_transition(faculty, AccountStatus.REJECTED)

        faculty.status = AccountStatus.REJECTED.value
        faculty.is_active = False
        await self._db.flush()

        logger.info(f"Account {faculty.email} rejected by admin {actor.id}")
        return faculty

    async def change_role(self, faculty_id: int, role: Role, actor: Faculty) -> Faculty:
        faculty = await self.get_or_404(faculty_id)
        self._check_rank(faculty, actor)
        if role is Role.SUPER_ADMIN and not actor.role_enum.implies(Capability.ASSIGN_SUPER_ADMIN):
            raise PermissionDenied("Only super admins can grant or revoke the super admin role")

        faculty.role = Role(role).value
        await self._db.flush()

        logger.info(f"Role of {faculty.email} set to {faculty.role} by admin {actor.id}")
        return faculty

    async def set_active(self, faculty_id: int, active: bool, actor: Faculty) -> Faculty:
        faculty = await self.get_or_404(faculty_id)
        self._check_rank(faculty, actor)
        if active and faculty.status_enum is not AccountStatus.APPROVED:
            raise ConflictError("Only approved accounts can be activated")
        if not active and faculty.id == actor.id:
            raise ConflictError("Admins cannot deactivate their own account")

        faculty.is_active = active
        await self._db.flush()

        logger.info(f"Account {faculty.email} {'activated' if active else 'deactivated'} by admin {actor.id}")
        return faculty

    # ─── Login Gate ───────────────────────────────────────────────────────────

    async def authenticate(self, email: str, password: str) -> Faculty:
        """
        Returns the account when the password matches and the account may
        sign in. Unknown emails and wrong passwords share one message.
        """
        faculty = await self.get_by_email(email)
        if faculty is None:
            burn_hash_time()
            logger.warning(f"Login attempt for unknown email: {email}")
            raise AuthenticationFailed("Invalid credentials")

        if not verify_password(password, faculty.password_hash):
            logger.warning(f"Failed login for {faculty.email}")
            raise AuthenticationFailed("Invalid credentials")

        status = faculty.status_enum
        if status is AccountStatus.PENDING:
            raise AuthenticationFailed("Your account is pending approval")
        if status is AccountStatus.REJECTED:
            raise AuthenticationFailed("Your account has been rejected")
        if not faculty.is_active:
            raise AuthenticationFailed("Account inactive")

        return faculty

    async def record_login(self, faculty: Faculty) -> None:
        now = datetime.now(timezone.utc)
        faculty.last_login_at = now

        result = await self._db.execute(select(UserStats).where(UserStats.faculty_id == faculty.id))
        stats = result.scalar_one_or_none()
        if stats is None:
            stats = UserStats(faculty_id=faculty.id, login_count=0)
            self._db.add(stats)
        stats.login_count = (stats.login_count or 0) + 1
        stats.last_active_at = now
        await self._db.flush()
