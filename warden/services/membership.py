"""
Membership & permission resolution.

Resolves a user's standing inside a company (role plus flattened
permission keys) and manages the (company, user) membership rows.
Atomicity of concurrent writes to one pair is left to the repository.
"""

from __future__ import annotations

import logging
import uuid

from warden.core.errors import NotFound, ValidationError
from warden.core.models import (
    CompanyContext,
    Membership,
    MembershipStatus,
    MembershipType,
    MembershipUpdate,
    MemberList,
    Role,
)
from warden.storage.base import MembershipRepository

logger = logging.getLogger(__name__)
audit = logging.getLogger("warden.audit")

MAX_PAGE_SIZE = 100


class MembershipService:
    def __init__(self, memberships: MembershipRepository):
        self.memberships = memberships

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve_company_context(
        self, user_id: uuid.UUID, company_id: uuid.UUID
    ) -> CompanyContext:
        """
        Role and permissions of a user in one company.

        Permission keys are ``<category>.<entity>.<code>``, sorted and
        de-duplicated, so the result does not depend on join row order.

        Raises:
            NotFound: The user has no membership in the company
        """
        rows = await self.memberships.get_company_permission_rows(user_id, company_id)
        if not rows:
            raise NotFound("User company not found")

        first = rows[0]
        keys = {
            (row.category, row.entity, row.code)
            for row in rows
            if row.category and row.entity and row.code
        }
        permissions = [f"{c}.{e}.{p}" for c, e, p in sorted(keys)]

        logger.debug(
            f"Resolved {len(permissions)} permissions for {user_id} in {company_id}"
        )
        return CompanyContext(
            company_id=first.company_id,
            company_name=first.company_name,
            role=Role(
                id=first.role_id,
                title=first.role_title,
                description=first.role_description,
            ),
            permissions=permissions,
            status=first.status,
            membership_type=first.membership_type,
        )

    async def resolve_default_company(
        self, user_id: uuid.UUID
    ) -> tuple[uuid.UUID, MembershipType] | None:
        """First active company (lowest id) and its membership type, or None."""
        return await self.memberships.get_first_active_company(user_id)

    async def record_login(self, user_id: uuid.UUID) -> None:
        await self.memberships.update_last_login(user_id)

    # =========================================================================
    # Membership CRUD
    # =========================================================================

    async def assign_membership(
        self,
        company_id: uuid.UUID,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        status: MembershipStatus = MembershipStatus.ACTIVE,
        membership_type: MembershipType = MembershipType.COMPANY,
    ) -> Membership:
        """Create the membership, or overwrite role/status/type if it exists."""
        membership = await self.memberships.assign(
            company_id, user_id, role_id, status, membership_type
        )
        audit.info(
            f"membership.assign company={company_id} user={user_id} "
            f"role={role_id} status={status.value}"
        )
        return membership

    async def update_membership(self, patch: MembershipUpdate) -> Membership:
        """
        Change only the provided fields.

        Raises:
            ValidationError: Missing company or user id
            NotFound: No such membership
        """
        if patch.company_id is None or patch.user_id is None:
            raise ValidationError("company_id and user_id are required")
        membership = await self.memberships.update(patch)
        audit.info(f"membership.update company={patch.company_id} user={patch.user_id}")
        return membership

    async def remove_membership(self, company_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Raises NotFound when there is no such membership."""
        await self.memberships.remove(company_id, user_id)
        audit.info(f"membership.remove company={company_id} user={user_id}")

    async def list_members(
        self, company_id: uuid.UUID, page: int = 1, page_size: int = 20
    ) -> MemberList:
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")
        return await self.memberships.list_for_company(
            company_id, page, min(page_size, MAX_PAGE_SIZE)
        )
