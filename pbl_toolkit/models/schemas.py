"""
models/schemas.py

Pydantic models are the contract between the API and the React frontend.
The frontend speaks camelCase, so every model serializes with camelCase
aliases while still accepting snake_case input.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pbl_toolkit.core.roles import AccountStatus, Role

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _normalise_email(v: str) -> str:
    return v.lower().strip()


def _require_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("Name is required")
    return v


# ─────────────────────────────────────────────
# Authentication
# ─────────────────────────────────────────────

class RegisterRequest(CamelModel):
    """
    Self-registration payload. The password is hashed in the workflow and
    never persisted in plaintext.
    """
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    title: Optional[str] = Field(None, max_length=255)
    department: Optional[str] = Field(None, max_length=255)
    institution: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _require_name(v)


class RegisterResponse(CamelModel):
    id: int
    email: str
    name: str
    status: AccountStatus
    message: str = "Registration submitted successfully. Your account is pending admin approval."


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class FacultyProfile(CamelModel):
    """Public-safe profile. Never carries the password hash or API key."""
    id: int
    name: str
    email: str
    role: Role
    status: AccountStatus
    is_active: bool
    title: str
    department: str
    institution: str
    bio: Optional[str] = None
    last_login_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class LoginResponse(CamelModel):
    """
    `session_id` is set for the opaque strategy and `token` for the signed
    strategy; clients send whichever they got as `Authorization: Bearer`.
    """
    session_id: Optional[str] = None
    token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: datetime
    faculty: FacultyProfile


class LogoutResponse(CamelModel):
    success: bool = True


# ─────────────────────────────────────────────
# Faculty self-service
# ─────────────────────────────────────────────

class FacultyUpdate(CamelModel):
    """Fields an owner may change. Role, status and email are admin territory."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    title: Optional[str] = Field(None, max_length=255)
    department: Optional[str] = Field(None, max_length=255)
    institution: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return _require_name(v)


class ApiKeyUpdate(CamelModel):
    api_key: str = Field(..., min_length=1)


class FacultySettings(CamelModel):
    has_api_key: bool


class MessageResponse(CamelModel):
    message: str


# ─────────────────────────────────────────────
# Administration
# ─────────────────────────────────────────────

class AdminCreateUser(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    title: str = Field(..., min_length=1, max_length=255)
    department: str = Field(..., min_length=1, max_length=255)
    institution: str = Field(..., min_length=1, max_length=255)
    role: Role = Role.INSTRUCTOR

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _require_name(v)


class AdminUserView(FacultyProfile):
    approved_by: Optional[int] = None
    login_count: int = 0


class RoleUpdate(CamelModel):
    role: Role


class StatusChangeResponse(CamelModel):
    success: bool = True
    user: AdminUserView


class SystemKeyStatus(CamelModel):
    has_api_key: bool
    updated_by: Optional[int] = None
    updated_at: Optional[datetime] = None


# ─────────────────────────────────────────────
# Integrations
# ─────────────────────────────────────────────

class ApiKeyTestRequest(CamelModel):
    api_key: str = Field(..., min_length=1)


class ApiKeyTestResult(CamelModel):
    valid: bool
    message: str


class OpenAIKeyStatus(CamelModel):
    configured: bool
    source: Optional[str] = None  # personal | system


class RepositorySummary(CamelModel):
    id: int
    name: str
    full_name: str
    private: bool
    html_url: str
    default_branch: Optional[str] = None
    updated_at: Optional[datetime] = None


class RepositoryList(CamelModel):
    total: int
    repositories: List[RepositorySummary]
