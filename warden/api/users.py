# =============================================================================
# User API Routes
# =============================================================================
#
# Endpoints:
#   GET    /users/{user_id}           - Fetch a user
#   PUT    /users/{user_id}           - Partial update (no passwords)
#   DELETE /users/{user_id}           - Hard delete
#   PUT    /users/{user_id}/password  - Change password (self only)
#
# A user may act on their own record. Company and university users may act
# on members of their own company. Bots and students never reach a record.
#
# =============================================================================

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from warden.api.container import Container, get_container
from warden.api.responses import ok
from warden.auth.context import AuthContext
from warden.auth.policies import require_self_or_role
from warden.core.models import MembershipType, UpdatePasswordRequest, UserResponse, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])

ADMIN_ROLES = (MembershipType.COMPANY.value, MembershipType.UNIVERSITY.value)


@router.get("/{user_id}")
async def get_user(
    user_id: uuid.UUID,
    ctx: AuthContext = Depends(require_self_or_role(*ADMIN_ROLES)),
    container: Container = Depends(get_container),
):
    user = await container.users.get(user_id)
    return ok(UserResponse.from_user(user))


@router.put("/{user_id}")
async def update_user(
    user_id: uuid.UUID,
    patch: UserUpdate,
    ctx: AuthContext = Depends(require_self_or_role(*ADMIN_ROLES)),
    container: Container = Depends(get_container),
):
    """Only non-empty fields are written."""
    patch = patch.model_copy(update={"id": user_id})
    updated_id = await container.users.update(patch)
    return ok({"id": updated_id}, description="User updated")


@router.delete("/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    ctx: AuthContext = Depends(require_self_or_role(*ADMIN_ROLES)),
    container: Container = Depends(get_container),
):
    await container.users.delete(user_id)
    return ok(description="User deleted")


@router.put("/{user_id}/password")
async def update_password(
    user_id: uuid.UUID,
    data: UpdatePasswordRequest,
    ctx: AuthContext = Depends(require_self_or_role()),
    container: Container = Depends(get_container),
):
    await container.users.update_password(user_id, data.old_password, data.new_password)
    return ok(description="Password updated")
