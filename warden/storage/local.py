"""
Local storage implementations for development and tests.

In-memory implementations that work without any external services.
They follow the same contract as the PostgreSQL/Redis ones, including the
(company, user) upsert and the ordering of the first active company.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable

from warden.core.errors import Conflict, NotFound
from warden.core.models import (
    Company,
    Membership,
    MembershipStatus,
    MembershipType,
    MembershipUpdate,
    MemberList,
    MemberSummary,
    PageMeta,
    Permission,
    PermissionRow,
    Role,
    RolePermission,
    User,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from warden.core.utils import new_id, page_count, utc_now
from warden.storage.base import CacheStorage, MembershipRepository, UserRepository


# =============================================================================
# In-Memory Users
# =============================================================================


class InMemoryUserRepository(UserRepository):
    """In-memory user store for development."""

    def __init__(self):
        self._users: dict[uuid.UUID, User] = {}

    def _find_email(self, email: str) -> User | None:
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    async def get_by_id(self, user_id: uuid.UUID) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user.model_copy()

    async def get_by_email(self, email: str) -> User:
        user = self._find_email(email)
        if user is None:
            raise NotFound("User not found")
        return user.model_copy()

    async def create(self, data: UserCreate, password_hash: str | None) -> uuid.UUID:
        if data.email and self._find_email(data.email):
            raise Conflict("Email already registered")
        now = utc_now()
        user = User(
            id=new_id(),
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email or None,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        self._users[user.id] = user
        return user.id

    async def update(self, patch: UserUpdate, password_hash: str | None = None) -> uuid.UUID:
        user = self._users.get(patch.id)
        if user is None:
            raise NotFound("User not found")
        changes: dict[str, Any] = patch.changes()
        if "email" in changes:
            other = self._find_email(changes["email"])
            if other is not None and other.id != user.id:
                raise Conflict("Email already registered")
            if changes["email"] != user.email:
                changes["email_verified"] = False
        if password_hash:
            changes["password_hash"] = password_hash
        changes["updated_at"] = utc_now()
        self._users[user.id] = user.model_copy(update=changes)
        return user.id

    async def delete(self, user_id: uuid.UUID) -> None:
        if self._users.pop(user_id, None) is None:
            raise NotFound("User not found")

    async def set_email_verified(self, email: str) -> None:
        user = self._find_email(email)
        if user is None:
            raise NotFound("User not found")
        self._users[user.id] = user.model_copy(
            update={"email_verified": True, "updated_at": utc_now()}
        )


# =============================================================================
# In-Memory Memberships
# =============================================================================


class InMemoryMembershipRepository(MembershipRepository):
    """
    In-memory companies, roles, permissions and memberships.

    The add_* helpers seed reference data that the relational schema would
    otherwise provide.
    """

    def __init__(self, users: InMemoryUserRepository):
        self._users = users
        self._companies: dict[uuid.UUID, Company] = {}
        self._roles: dict[uuid.UUID, Role] = {}
        self._permissions: dict[uuid.UUID, Permission] = {}
        self._grants: list[RolePermission] = []
        self._memberships: dict[tuple[uuid.UUID, uuid.UUID], Membership] = {}

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def add_company(self, name: str, company_id: uuid.UUID | None = None) -> Company:
        company = Company(id=company_id or new_id(), name=name)
        self._companies[company.id] = company
        return company

    def add_role(self, title: str, description: str | None = None) -> Role:
        role = Role(id=new_id(), title=title, description=description)
        self._roles[role.id] = role
        return role

    def add_permission(self, category: str, entity: str, code: str) -> Permission:
        permission = Permission(id=new_id(), category=category, entity=entity, code=code)
        self._permissions[permission.id] = permission
        return permission

    def grant(self, role_id: uuid.UUID, permission_id: uuid.UUID, enabled: bool = True) -> None:
        self._grants.append(
            RolePermission(role_id=role_id, permission_id=permission_id, enabled=enabled)
        )

    def membership_count(self) -> int:
        return len(self._memberships)

    # -------------------------------------------------------------------------
    # Repository contract
    # -------------------------------------------------------------------------

    async def get_first_active_company(
        self, user_id: uuid.UUID
    ) -> tuple[uuid.UUID, MembershipType] | None:
        active = [
            m for m in self._memberships.values()
            if m.user_id == user_id and m.status == MembershipStatus.ACTIVE
        ]
        if not active:
            return None
        first = min(active, key=lambda m: str(m.company_id))
        return first.company_id, first.type

    async def update_last_login(self, user_id: uuid.UUID) -> None:
        now = utc_now()
        for key, membership in self._memberships.items():
            if membership.user_id == user_id:
                self._memberships[key] = membership.model_copy(update={"last_login_at": now})

    async def assign(
        self,
        company_id: uuid.UUID,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        status: MembershipStatus,
        membership_type: MembershipType,
    ) -> Membership:
        key = (company_id, user_id)
        existing = self._memberships.get(key)
        membership = Membership(
            company_id=company_id,
            user_id=user_id,
            role_id=role_id,
            status=status,
            type=membership_type,
            last_login_at=existing.last_login_at if existing else None,
        )
        self._memberships[key] = membership
        return membership

    async def update(self, patch: MembershipUpdate) -> Membership:
        key = (patch.company_id, patch.user_id)
        membership = self._memberships.get(key)
        if membership is None:
            raise NotFound("Company user not found")
        changes = {
            name: value
            for name, value in (
                ("role_id", patch.role_id),
                ("status", patch.status),
                ("type", patch.type),
            )
            if value is not None
        }
        self._memberships[key] = membership.model_copy(update=changes)
        return self._memberships[key]

    async def remove(self, company_id: uuid.UUID, user_id: uuid.UUID) -> None:
        if self._memberships.pop((company_id, user_id), None) is None:
            raise NotFound("Company user not found")

    async def list_for_company(
        self, company_id: uuid.UUID, page: int, page_size: int
    ) -> MemberList:
        rows: list[tuple[datetime, MemberSummary]] = []
        for membership in self._memberships.values():
            if membership.company_id != company_id:
                continue
            user = self._users._users.get(membership.user_id)
            role = self._roles.get(membership.role_id)
            if user is None or role is None:
                continue  # inner joins
            rows.append((
                user.created_at,
                MemberSummary(
                    company_id=company_id,
                    user=UserResponse.from_user(user),
                    role=role,
                    status=membership.status,
                    type=membership.type,
                ),
            ))
        rows.sort(key=lambda r: r[0], reverse=True)
        offset = (page - 1) * page_size
        return MemberList(
            items=[summary for _, summary in rows[offset:offset + page_size]],
            meta=PageMeta(
                total=len(rows),
                page=page,
                page_size=page_size,
                page_count=page_count(len(rows), page_size),
            ),
        )

    async def get_company_permission_rows(
        self, user_id: uuid.UUID, company_id: uuid.UUID
    ) -> list[PermissionRow]:
        membership = self._memberships.get((company_id, user_id))
        if membership is None:
            return []
        role = self._roles.get(membership.role_id)
        if role is None:
            return []
        company = self._companies.get(company_id)

        base = dict(
            company_id=company_id,
            company_name=company.name if company else "",
            status=membership.status,
            membership_type=membership.type,
            role_id=role.id,
            role_title=role.title,
            role_description=role.description,
        )
        rows = []
        for grant in self._grants:
            if grant.role_id != role.id or not grant.enabled:
                continue
            permission = self._permissions.get(grant.permission_id)
            if permission is None:
                continue
            rows.append(PermissionRow(
                **base,
                category=permission.category,
                entity=permission.entity,
                code=permission.code,
            ))
        # LEFT JOIN: a role without enabled grants still yields one row
        return rows or [PermissionRow(**base)]


# =============================================================================
# In-Memory Cache Storage
# =============================================================================


class InMemoryCacheStorage(CacheStorage):
    """In-memory cache for development."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._cache: dict[str, tuple[Any, float | None]] = {}
        self._clock = clock

    def _now(self) -> float:
        return self._clock().timestamp()

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = None
        if ttl:
            expires_at = self._now() + ttl
        self._cache[key] = (value, expires_at)

    async def get(self, key: str) -> Any | None:
        if key not in self._cache:
            return None

        value, expires_at = self._cache[key]
        if expires_at and self._now() > expires_at:
            del self._cache[key]
            return None

        return value

    async def delete(self, key: str) -> bool:
        if key in self._cache:
            del self._cache[key]
            return True
        return False

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None
