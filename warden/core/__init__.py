"""
Core module - fundamental data models and infrastructure.

This module contains:
- models: Users, companies, roles, permissions and memberships
- errors: The error taxonomy shared by every layer
- tasks: Fire-and-forget background work
- utils: Shared utility functions
"""

from warden.core.errors import (
    Conflict,
    Forbidden,
    InternalError,
    NotFound,
    Unauthorized,
    ValidationError,
    WardenError,
)
from warden.core.models import (
    CompanyContext,
    Membership,
    MembershipStatus,
    MembershipType,
    User,
)
from warden.core.tasks import FireAndForget
from warden.core.utils import new_id, parse_uuid, utc_now

__all__ = [
    # Errors
    "WardenError",
    "ValidationError",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "Conflict",
    "InternalError",
    # Models
    "User",
    "Membership",
    "MembershipStatus",
    "MembershipType",
    "CompanyContext",
    # Tasks
    "FireAndForget",
    # Utils
    "new_id",
    "parse_uuid",
    "utc_now",
]
