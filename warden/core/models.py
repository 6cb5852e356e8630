"""
Core data models for the warden service.

These models represent the stored entities (users, roles, permissions,
company memberships) and the request/response shapes built from them.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, EmailStr, Field

from warden.core.utils import utc_now


# =============================================================================
# Enums
# =============================================================================


class MembershipStatus(str, Enum):
    """Status of a user's membership in a company."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"  # Invited, not yet accepted


class MembershipType(str, Enum):
    """What kind of organisation the membership belongs to."""

    COMPANY = "company"
    UNIVERSITY = "university"


# =============================================================================
# Users (credential records)
# =============================================================================


class User(BaseModel):
    """User stored in the database."""

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str | None = None
    password_hash: str | None = None  # None for users without a local password
    email_verified: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)


class UserCreate(BaseModel):
    """User registration data."""

    first_name: str = Field(min_length=2, max_length=100)
    last_name: str = Field(min_length=2, max_length=100)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6, max_length=50)


class UserUpdate(BaseModel):
    """
    Partial update of a user.

    Only non-empty fields overwrite stored values. Passwords are changed
    through the dedicated password endpoint, never here.
    """

    id: uuid.UUID | None = Field(default=None, exclude=True)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = None

    def changes(self) -> dict[str, Any]:
        """Fields that carry a value and should be written."""
        return {
            name: value
            for name, value in (
                ("first_name", self.first_name),
                ("last_name", self.last_name),
                ("email", self.email),
            )
            if value
        }


class UserResponse(BaseModel):
    """User data returned to client (no sensitive fields)."""

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str | None = None
    email_verified: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            email_verified=user.email_verified,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


# =============================================================================
# Auth requests / responses
# =============================================================================


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class VerifyEmailRequest(BaseModel):
    email: EmailStr
    code: str = Field(pattern=r"^\d{6}$")


class ResendCodeRequest(BaseModel):
    email: EmailStr


class UpdatePasswordRequest(BaseModel):
    old_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=50)


class RefreshRequest(BaseModel):
    refresh_token: str


class BotTokenRequest(BaseModel):
    student_id: uuid.UUID
    pinfl: str = Field(min_length=1)


class TokenPair(BaseModel):
    """Access and refresh token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires


class LoginResponse(BaseModel):
    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


# =============================================================================
# Companies, roles and permissions
# =============================================================================


class Company(BaseModel):
    id: uuid.UUID
    name: str


class Role(BaseModel):
    """Named bundle of permissions, shared across companies."""

    id: uuid.UUID
    title: str
    description: str | None = None


class Permission(BaseModel):
    """Fine-grained capability descriptor."""

    id: uuid.UUID
    category: str
    entity: str
    code: str

    @property
    def key(self) -> str:
        return f"{self.category}.{self.entity}.{self.code}"


class RolePermission(BaseModel):
    role_id: uuid.UUID
    permission_id: uuid.UUID
    enabled: bool = True


class Membership(BaseModel):
    """A user's (company, role, status) association."""

    company_id: uuid.UUID
    user_id: uuid.UUID
    role_id: uuid.UUID
    status: MembershipStatus = MembershipStatus.ACTIVE
    type: MembershipType = MembershipType.COMPANY
    last_login_at: datetime | None = None


class MembershipAssign(BaseModel):
    """Body of the membership assignment endpoint."""

    user_id: uuid.UUID
    role_id: uuid.UUID
    status: MembershipStatus = MembershipStatus.ACTIVE
    type: MembershipType = MembershipType.COMPANY


class MembershipUpdate(BaseModel):
    """Partial membership change; None leaves the stored value."""

    company_id: uuid.UUID | None = Field(default=None, exclude=True)
    user_id: uuid.UUID | None = Field(default=None, exclude=True)
    role_id: uuid.UUID | None = None
    status: MembershipStatus | None = None
    type: MembershipType | None = None


class PermissionRow(BaseModel):
    """
    One row of the membership → role → permission join.

    The permission columns are None when the role has no enabled grants
    (the join is a LEFT JOIN on grants).
    """

    company_id: uuid.UUID
    company_name: str
    status: MembershipStatus
    membership_type: MembershipType
    role_id: uuid.UUID
    role_title: str
    role_description: str | None = None
    category: str | None = None
    entity: str | None = None
    code: str | None = None


class CompanyContext(BaseModel):
    """A user's resolved standing inside one company."""

    company_id: uuid.UUID
    company_name: str
    role: Role
    permissions: list[str] = Field(default_factory=list)
    status: MembershipStatus
    membership_type: MembershipType


class MemberSummary(BaseModel):
    company_id: uuid.UUID
    user: UserResponse
    role: Role
    status: MembershipStatus
    type: MembershipType


class PageMeta(BaseModel):
    total: int
    page: int
    page_size: int
    page_count: int


class MemberList(BaseModel):
    items: list[MemberSummary] = Field(default_factory=list)
    meta: PageMeta
