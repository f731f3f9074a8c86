"""
db/models.py

SQLAlchemy ORM models for the PBL Toolkit identity tables.

Faculty:
- `password_hash` is always a bcrypt hash, never plaintext.
- `status` walks pending -> approved | rejected; `is_active` stays False
  until an admin approves the account, and is the soft-delete switch after.
- `openai_api_key` holds the encrypted stored form (`v1:...`) or NULL.

AuthSession:
- One row per opaque login session. `expires_at` is fixed at creation and
  never extended.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from pbl_toolkit.core.roles import AccountStatus, Role
from pbl_toolkit.db.database import Base


class Faculty(Base):
    """
    One registered user of the platform. Maps to the `faculty` table.

    Role values: "instructor" | "admin" | "super_admin"
    Status values: "pending" | "approved" | "rejected"
    """

    __tablename__ = "faculty"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=True)

    role = Column(String(50), nullable=False, default=Role.INSTRUCTOR.value)
    status = Column(String(50), nullable=False, default=AccountStatus.PENDING.value)
    is_active = Column(Boolean, nullable=False, default=False)

    title = Column(String(255), nullable=False, default="Instructor")
    department = Column(String(255), nullable=False, default="General")
    institution = Column(String(255), nullable=False, default="")
    bio = Column(Text, nullable=True)

    openai_api_key = Column(Text, nullable=True, comment="Encrypted stored form, never plaintext")

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_faculty_status_created", "status", "created_at"),
    )

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    @property
    def status_enum(self) -> AccountStatus:
        return AccountStatus(self.status)

    def __repr__(self) -> str:
        return f"<Faculty id={self.id} email={self.email} role={self.role} status={self.status}>"


class AuthSession(Base):
    """Server-side opaque session. Maps to the `sessions` table."""

    __tablename__ = "sessions"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(128), primary_key=True)
    faculty_id = Column(Integer, ForeignKey("faculty.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<AuthSession faculty_id={self.faculty_id} expires_at={self.expires_at}>"


class SystemSetting(Base):
    """Admin-managed key/value configuration, optionally encrypted."""

    __tablename__ = "system_settings"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    setting_key = Column(String(255), unique=True, nullable=False)
    setting_value = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, default="general")
    is_encrypted = Column(Boolean, nullable=False, default=False)
    updated_by = Column(Integer, ForeignKey("faculty.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class UserStats(Base):
    """Per-faculty usage counters, bumped by the login handler."""

    __tablename__ = "user_stats"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    faculty_id = Column(Integer, ForeignKey("faculty.id", ondelete="CASCADE"), unique=True, nullable=False)
    login_count = Column(Integer, nullable=False, default=0)
    last_active_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
