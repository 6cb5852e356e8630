"""
Storage abstraction layer.

All persistence goes through these interfaces. This allows swapping
implementations (in-memory → PostgreSQL, in-memory → Redis) without
changing service code.

Contract shared by every implementation:
- Absent entities raise NotFound (a domain signal), never a driver error.
- Transport/driver failures are logged with identifiers and raised as
  InternalError so raw driver text never reaches a response.
- Single-row atomicity for membership upserts is the store's job
  (ON CONFLICT in PostgreSQL); callers add no locking.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import Any

from warden.core.models import (
    Membership,
    MembershipStatus,
    MembershipType,
    MembershipUpdate,
    MemberList,
    PermissionRow,
    User,
    UserCreate,
    UserUpdate,
)


# =============================================================================
# Users
# =============================================================================


class UserRepository(ABC):
    """Credential records."""

    @abstractmethod
    async def get_by_id(self, user_id: uuid.UUID) -> User:
        """Raises NotFound."""

    @abstractmethod
    async def get_by_email(self, email: str) -> User:
        """Raises NotFound."""

    @abstractmethod
    async def create(self, data: UserCreate, password_hash: str | None) -> uuid.UUID:
        """Insert a user; raises Conflict for a duplicate email."""

    @abstractmethod
    async def update(self, patch: UserUpdate, password_hash: str | None = None) -> uuid.UUID:
        """
        Merge non-empty fields into the stored user.

        A non-empty password_hash replaces the stored one.
        Raises NotFound.
        """

    @abstractmethod
    async def delete(self, user_id: uuid.UUID) -> None:
        """Hard delete; raises NotFound."""

    @abstractmethod
    async def set_email_verified(self, email: str) -> None:
        """Mark the email as verified; raises NotFound."""


# =============================================================================
# Memberships, roles, permissions
# =============================================================================


class MembershipRepository(ABC):
    """Company memberships and the role/permission join."""

    @abstractmethod
    async def get_first_active_company(
        self, user_id: uuid.UUID
    ) -> tuple[uuid.UUID, MembershipType] | None:
        """Lowest company id among active memberships, or None."""

    @abstractmethod
    async def update_last_login(self, user_id: uuid.UUID) -> None:
        """Stamp last_login_at on the user's memberships."""

    @abstractmethod
    async def assign(
        self,
        company_id: uuid.UUID,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        status: MembershipStatus,
        membership_type: MembershipType,
    ) -> Membership:
        """Insert, or overwrite role/status/type of the existing row."""

    @abstractmethod
    async def update(self, patch: MembershipUpdate) -> Membership:
        """Change the provided fields; raises NotFound."""

    @abstractmethod
    async def remove(self, company_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Raises NotFound."""

    @abstractmethod
    async def list_for_company(
        self, company_id: uuid.UUID, page: int, page_size: int
    ) -> MemberList:
        """Members of a company, newest users first."""

    @abstractmethod
    async def get_company_permission_rows(
        self, user_id: uuid.UUID, company_id: uuid.UUID
    ) -> list[PermissionRow]:
        """
        Denormalized membership → role → enabled grant rows.

        Empty when the user has no membership in the company.
        """


# =============================================================================
# Cache
# =============================================================================


class CacheStorage(ABC):
    """
    Fast key-value cache for short-lived values (verification codes).

    Production Implementation: Redis
    Local Implementation: In-memory dict
    """

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a value with optional TTL in seconds."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value; None on miss or expiry."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists."""

    async def close(self) -> None:
        """Release connections (no-op by default)."""
