"""
PostgreSQL repositories (asyncpg).

Queries run against an existing schema:

    users(id, first_name, last_name, email, password, email_verified,
          created_at, updated_at)
    companies(id, name), university_entities(id, name)
    roles(id, title, description)
    permissions(id, category, entity, code)
    role_permissions(role_id, permission_id, enabled)
    company_users(company_id, user_id, role_id, status, type, last_login_at)
        UNIQUE (company_id, user_id)

Driver failures are logged with the identifiers involved and re-raised as
InternalError; the driver's text never leaves this module.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import asyncpg

from warden.core.errors import Conflict, InternalError, NotFound, WardenError
from warden.core.models import (
    Membership,
    MembershipStatus,
    MembershipType,
    MembershipUpdate,
    MemberList,
    MemberSummary,
    PageMeta,
    PermissionRow,
    Role,
    User,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from warden.core.utils import new_id, page_count
from warden.storage.base import MembershipRepository, UserRepository

logger = logging.getLogger(__name__)


# =============================================================================
# Connection pool
# =============================================================================


class PostgresDatabase:
    """Owns the asyncpg pool shared by the repositories."""

    def __init__(self, connection_string: str, pool_size: int = 10, timeout: float = 10.0):
        self.connection_string = connection_string
        self.pool_size = pool_size
        self.timeout = timeout
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Establish database connection pool."""
        logger.info(f"Connecting to PostgreSQL with pool size {self.pool_size}")
        self.pool = await asyncpg.create_pool(
            self.connection_string,
            min_size=1,
            max_size=self.pool_size,
            command_timeout=self.timeout,
        )
        logger.info("PostgreSQL connection pool established")

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self.pool:
            logger.info("Closing PostgreSQL connection pool")
            await self.pool.close()
            self.pool = None

    @asynccontextmanager
    async def connection(self, operation: str, **ids: Any) -> AsyncIterator[asyncpg.Connection]:
        """
        Acquire a connection and translate driver failures.

        Domain errors raised inside the block pass through untouched.
        """
        if not self.pool:
            raise RuntimeError("PostgreSQL pool not connected. Call connect() first.")

        try:
            async with self.pool.acquire(timeout=self.timeout) as conn:
                yield conn
        except WardenError:
            raise
        except asyncpg.UniqueViolationError as e:
            logger.warning(f"{operation}: unique violation {ids}")
            raise Conflict("Email already registered") from e
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"{operation} failed {ids}: {e!r}")
            raise InternalError() from e


def _affected(status: str) -> int:
    """Row count from an asyncpg command tag such as 'UPDATE 1'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


# =============================================================================
# Users
# =============================================================================


_USER_COLUMNS = (
    "id, first_name, last_name, email, password, email_verified, created_at, updated_at"
)


def _user_from_row(row: asyncpg.Record) -> User:
    return User(
        id=row["id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        email=row["email"],
        password_hash=row["password"],
        email_verified=row["email_verified"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresUserRepository(UserRepository):
    def __init__(self, db: PostgresDatabase):
        self._db = db

    async def get_by_id(self, user_id: uuid.UUID) -> User:
        async with self._db.connection("get user", user_id=str(user_id)) as conn:
            row = await conn.fetchrow(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
                timeout=self._db.timeout,
            )
        if row is None:
            raise NotFound("User not found")
        return _user_from_row(row)

    async def get_by_email(self, email: str) -> User:
        async with self._db.connection("get user by email") as conn:
            row = await conn.fetchrow(
                f"SELECT {_USER_COLUMNS} FROM users WHERE email = $1",
                email,
                timeout=self._db.timeout,
            )
        if row is None:
            raise NotFound("User not found")
        return _user_from_row(row)

    async def create(self, data: UserCreate, password_hash: str | None) -> uuid.UUID:
        user_id = new_id()
        async with self._db.connection("create user", user_id=str(user_id)) as conn:
            await conn.execute(
                """
                INSERT INTO users
                    (id, first_name, last_name, email, password, email_verified,
                     created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, false, NOW(), NOW())
                """,
                user_id,
                data.first_name,
                data.last_name,
                data.email or None,
                password_hash,
                timeout=self._db.timeout,
            )
        logger.info(f"User created: {user_id}")
        return user_id

    async def update(self, patch: UserUpdate, password_hash: str | None = None) -> uuid.UUID:
        async with self._db.connection("update user", user_id=str(patch.id)) as conn:
            status = await conn.execute(
                """
                UPDATE users
                SET
                    first_name = COALESCE(NULLIF($1, ''), first_name),
                    last_name = COALESCE(NULLIF($2, ''), last_name),
                    email = COALESCE(NULLIF($3, ''), email),
                    email_verified = CASE
                        WHEN NULLIF($3, '') IS NOT NULL AND $3 IS DISTINCT FROM email THEN false
                        ELSE email_verified
                    END,
                    password = COALESCE(NULLIF($4, ''), password),
                    updated_at = NOW()
                WHERE id = $5
                """,
                patch.first_name or "",
                patch.last_name or "",
                patch.email or "",
                password_hash or "",
                patch.id,
                timeout=self._db.timeout,
            )
        if _affected(status) == 0:
            raise NotFound("User not found")
        return patch.id

    async def delete(self, user_id: uuid.UUID) -> None:
        async with self._db.connection("delete user", user_id=str(user_id)) as conn:
            status = await conn.execute(
                "DELETE FROM users WHERE id = $1", user_id, timeout=self._db.timeout
            )
        if _affected(status) == 0:
            raise NotFound("User not found")

    async def set_email_verified(self, email: str) -> None:
        async with self._db.connection("verify email") as conn:
            status = await conn.execute(
                "UPDATE users SET email_verified = true, updated_at = NOW() WHERE email = $1",
                email,
                timeout=self._db.timeout,
            )
        if _affected(status) == 0:
            raise NotFound("User not found")


# =============================================================================
# Memberships
# =============================================================================


_MEMBERSHIP_COLUMNS = "company_id, user_id, role_id, status, type, last_login_at"


def _membership_from_row(row: asyncpg.Record) -> Membership:
    return Membership(
        company_id=row["company_id"],
        user_id=row["user_id"],
        role_id=row["role_id"],
        status=MembershipStatus(row["status"]),
        type=MembershipType(row["type"]),
        last_login_at=row["last_login_at"],
    )


class PostgresMembershipRepository(MembershipRepository):
    def __init__(self, db: PostgresDatabase):
        self._db = db

    async def get_first_active_company(
        self, user_id: uuid.UUID
    ) -> tuple[uuid.UUID, MembershipType] | None:
        async with self._db.connection("first active company", user_id=str(user_id)) as conn:
            row = await conn.fetchrow(
                """
                SELECT company_id, type
                FROM company_users
                WHERE user_id = $1 AND status = 'active'
                ORDER BY company_id ASC
                LIMIT 1
                """,
                user_id,
                timeout=self._db.timeout,
            )
        if row is None:
            return None
        return row["company_id"], MembershipType(row["type"])

    async def update_last_login(self, user_id: uuid.UUID) -> None:
        async with self._db.connection("update last login", user_id=str(user_id)) as conn:
            await conn.execute(
                "UPDATE company_users SET last_login_at = NOW() WHERE user_id = $1",
                user_id,
                timeout=self._db.timeout,
            )

    async def assign(
        self,
        company_id: uuid.UUID,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        status: MembershipStatus,
        membership_type: MembershipType,
    ) -> Membership:
        ids = dict(company_id=str(company_id), user_id=str(user_id), role_id=str(role_id))
        async with self._db.connection("assign membership", **ids) as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO company_users (company_id, user_id, role_id, status, type)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (company_id, user_id) DO UPDATE
                SET role_id = EXCLUDED.role_id,
                    status = EXCLUDED.status,
                    type = EXCLUDED.type
                RETURNING {_MEMBERSHIP_COLUMNS}
                """,
                company_id,
                user_id,
                role_id,
                status.value,
                membership_type.value,
                timeout=self._db.timeout,
            )
        return _membership_from_row(row)

    async def update(self, patch: MembershipUpdate) -> Membership:
        ids = dict(company_id=str(patch.company_id), user_id=str(patch.user_id))
        async with self._db.connection("update membership", **ids) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE company_users
                SET
                    role_id = COALESCE($1::uuid, role_id),
                    status = COALESCE($2::text, status),
                    type = COALESCE($3::text, type)
                WHERE company_id = $4 AND user_id = $5
                RETURNING {_MEMBERSHIP_COLUMNS}
                """,
                patch.role_id,
                patch.status.value if patch.status else None,
                patch.type.value if patch.type else None,
                patch.company_id,
                patch.user_id,
                timeout=self._db.timeout,
            )
        if row is None:
            raise NotFound("Company user not found")
        return _membership_from_row(row)

    async def remove(self, company_id: uuid.UUID, user_id: uuid.UUID) -> None:
        ids = dict(company_id=str(company_id), user_id=str(user_id))
        async with self._db.connection("remove membership", **ids) as conn:
            status = await conn.execute(
                "DELETE FROM company_users WHERE company_id = $1 AND user_id = $2",
                company_id,
                user_id,
                timeout=self._db.timeout,
            )
        if _affected(status) == 0:
            raise NotFound("Company user not found")

    async def list_for_company(
        self, company_id: uuid.UUID, page: int, page_size: int
    ) -> MemberList:
        offset = (page - 1) * page_size
        async with self._db.connection("list members", company_id=str(company_id)) as conn:
            total = await conn.fetchval(
                "SELECT COUNT(1) FROM company_users WHERE company_id = $1",
                company_id,
                timeout=self._db.timeout,
            )
            rows = await conn.fetch(
                """
                SELECT
                    cu.company_id, cu.status, cu.type,
                    u.id, u.first_name, u.last_name, u.email, u.password,
                    u.email_verified, u.created_at, u.updated_at,
                    r.id AS role_id, r.title AS role_title,
                    r.description AS role_description
                FROM company_users cu
                INNER JOIN users u ON cu.user_id = u.id
                INNER JOIN roles r ON cu.role_id = r.id
                WHERE cu.company_id = $1
                ORDER BY u.created_at DESC
                LIMIT $2 OFFSET $3
                """,
                company_id,
                page_size,
                offset,
                timeout=self._db.timeout,
            )

        items = [
            MemberSummary(
                company_id=row["company_id"],
                user=UserResponse.from_user(_user_from_row(row)),
                role=Role(
                    id=row["role_id"],
                    title=row["role_title"],
                    description=row["role_description"],
                ),
                status=MembershipStatus(row["status"]),
                type=MembershipType(row["type"]),
            )
            for row in rows
        ]
        return MemberList(
            items=items,
            meta=PageMeta(
                total=total,
                page=page,
                page_size=page_size,
                page_count=page_count(total, page_size),
            ),
        )

    async def get_company_permission_rows(
        self, user_id: uuid.UUID, company_id: uuid.UUID
    ) -> list[PermissionRow]:
        ids = dict(user_id=str(user_id), company_id=str(company_id))
        async with self._db.connection("company permissions", **ids) as conn:
            rows = await conn.fetch(
                """
                SELECT
                    cu.company_id,
                    COALESCE(c.name, ue.name, '') AS company_name,
                    cu.status,
                    cu.type,
                    r.id AS role_id,
                    r.title AS role_title,
                    r.description AS role_description,
                    p.category,
                    p.entity,
                    p.code
                FROM company_users cu
                LEFT JOIN companies c ON cu.company_id = c.id
                LEFT JOIN university_entities ue ON cu.company_id = ue.id
                INNER JOIN roles r ON cu.role_id = r.id
                LEFT JOIN role_permissions rp ON r.id = rp.role_id AND rp.enabled = true
                LEFT JOIN permissions p ON rp.permission_id = p.id
                WHERE cu.user_id = $1 AND cu.company_id = $2
                ORDER BY p.category, p.entity, p.code
                """,
                user_id,
                company_id,
                timeout=self._db.timeout,
            )
        return [
            PermissionRow(
                company_id=row["company_id"],
                company_name=row["company_name"],
                status=MembershipStatus(row["status"]),
                membership_type=MembershipType(row["type"]),
                role_id=row["role_id"],
                role_title=row["role_title"],
                role_description=row["role_description"],
                category=row["category"],
                entity=row["entity"],
                code=row["code"],
            )
            for row in rows
        ]
