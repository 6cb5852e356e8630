"""
Auth context - who is calling, for each request.

This is the lightweight, immutable object the middleware attaches to
``request.state.auth`` and route handlers receive through policies.
It is built once from a verified principal and never changes afterwards.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from warden.auth.principal import (
    BotPrincipal,
    CompanyUser,
    PlainUser,
    Principal,
    PrincipalKind,
    StudentPrincipal,
)

ROLE_STUDENT = "student"
ROLE_USER = "user"


@dataclass(frozen=True)
class AuthContext:
    """
    Authorization context for a request.

    Usage in routes:
        async def my_route(ctx: AuthContext = Depends(require_auth())):
            print(f"User {ctx.user_id} in company {ctx.company_id}")
    """

    principal: Principal

    @property
    def kind(self) -> PrincipalKind:
        return self.principal.kind

    @property
    def user_id(self) -> uuid.UUID:
        """Subject id (the student id for bot tokens)."""
        return self.principal.subject_id

    @property
    def email(self) -> str | None:
        if isinstance(self.principal, BotPrincipal):
            return None
        return self.principal.email

    @property
    def first_name(self) -> str | None:
        if isinstance(self.principal, (PlainUser, CompanyUser)):
            return self.principal.first_name
        return None

    @property
    def last_name(self) -> str | None:
        if isinstance(self.principal, (PlainUser, CompanyUser)):
            return self.principal.last_name
        return None

    @property
    def company_id(self) -> uuid.UUID | None:
        if isinstance(self.principal, CompanyUser):
            return self.principal.company_id
        return None

    @property
    def user_type(self) -> str | None:
        if isinstance(self.principal, CompanyUser):
            return self.principal.user_type
        return None

    @property
    def pinfl(self) -> str | None:
        if isinstance(self.principal, (StudentPrincipal, BotPrincipal)):
            return self.principal.pinfl
        return None

    @property
    def is_bot(self) -> bool:
        return self.kind == PrincipalKind.BOT

    @property
    def role(self) -> str | None:
        """
        Role used by require_role().

        Company users carry their membership type, students and plain
        users their kind. Bots have no role.
        """
        if self.kind == PrincipalKind.COMPANY_USER:
            return self.user_type
        if self.kind == PrincipalKind.STUDENT:
            return ROLE_STUDENT
        if self.kind == PrincipalKind.USER:
            return ROLE_USER
        return None

    def to_dict(self) -> dict:
        """Public view of the context (used by GET /auth/me)."""
        return {
            "kind": self.kind.value,
            "user_id": str(self.user_id),
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company_id": str(self.company_id) if self.company_id else None,
            "user_type": self.user_type,
            "pinfl": self.pinfl,
            "role": self.role,
        }
