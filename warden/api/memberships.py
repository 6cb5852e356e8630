# =============================================================================
# Company Membership Routes
# =============================================================================
#
# Endpoints:
#   GET    /companies/{company_id}/users            - Paginated members
#   PUT    /companies/{company_id}/users            - Assign (upsert) a member
#   PATCH  /companies/{company_id}/users/{user_id}  - Change role/status/type
#   DELETE /companies/{company_id}/users/{user_id}  - Remove a member
#
# Callers must be company or university users scoped to the same company.
#
# =============================================================================

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query

from warden.api.container import Container, get_container
from warden.api.responses import ok
from warden.auth.context import AuthContext
from warden.auth.policies import require_company_scope
from warden.core.models import MembershipAssign, MembershipType, MembershipUpdate

router = APIRouter(prefix="/companies/{company_id}/users", tags=["memberships"])

company_admin = require_company_scope(
    MembershipType.COMPANY.value, MembershipType.UNIVERSITY.value
)


@router.get("")
async def list_members(
    company_id: uuid.UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    ctx: AuthContext = Depends(company_admin),
    container: Container = Depends(get_container),
):
    members = await container.memberships.list_members(company_id, page, page_size)
    return ok(members)


@router.put("")
async def assign_member(
    company_id: uuid.UUID,
    data: MembershipAssign,
    ctx: AuthContext = Depends(company_admin),
    container: Container = Depends(get_container),
):
    membership = await container.memberships.assign_membership(
        company_id=company_id,
        user_id=data.user_id,
        role_id=data.role_id,
        status=data.status,
        membership_type=data.type,
    )
    return ok(membership, description="User assigned to company")


@router.patch("/{user_id}")
async def update_member(
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    patch: MembershipUpdate,
    ctx: AuthContext = Depends(company_admin),
    container: Container = Depends(get_container),
):
    patch = patch.model_copy(update={"company_id": company_id, "user_id": user_id})
    membership = await container.memberships.update_membership(patch)
    return ok(membership, description="Company user updated")


@router.delete("/{user_id}")
async def remove_member(
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    ctx: AuthContext = Depends(company_admin),
    container: Container = Depends(get_container),
):
    await container.memberships.remove_membership(company_id, user_id)
    return ok(description="User removed from company")
