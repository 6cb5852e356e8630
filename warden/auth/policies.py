"""
Policies - the route-level interface to authorization.

Routes never look at tokens. The middleware has already attached an
AuthContext; policies read it and decide:

    ctx: AuthContext = Depends(require_auth())
    ctx: AuthContext = Depends(require_role("company", "university"))

Denials raise domain errors that the API layer renders in the envelope.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from typing import Awaitable, Callable

from fastapi import Depends, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from warden.api.container import Container, get_container
from warden.auth.context import AuthContext
from warden.auth.principal import PrincipalKind
from warden.core.errors import Forbidden, NotFound, Unauthorized

logger = logging.getLogger(__name__)


# =============================================================================
# Context access
# =============================================================================


def get_auth_context(request: Request) -> AuthContext:
    """
    The context attached by BearerAuthMiddleware.

    Raises:
        Unauthorized: The request carried no verified token
    """
    ctx = getattr(request.state, "auth", None)
    if not isinstance(ctx, AuthContext):
        raise Unauthorized("Authorization header required")
    return ctx


def require_auth() -> Callable[..., AuthContext]:
    """Any authenticated principal."""

    def dependency(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        return ctx

    return dependency


def require_role(*allowed: str) -> Callable[..., AuthContext]:
    """
    Require the context role to be one of ``allowed``.

    Principals without a role (bots, company users without a type) are
    always refused.
    """
    allowed_roles = frozenset(allowed)

    def dependency(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        role = ctx.role
        if role is None or role not in allowed_roles:
            logger.info(f"Role {role!r} of {ctx.user_id} not in {sorted(allowed_roles)}")
            raise Forbidden()
        return ctx

    return dependency


# Principals that own a user record (bot and student subjects are not user ids)
USER_RECORD_KINDS = (PrincipalKind.USER, PrincipalKind.COMPANY_USER)


def require_self_or_role(*allowed: str) -> Callable[..., Awaitable[AuthContext]]:
    """
    The caller acts on their own user record, or administers the target.

    Self access is limited to user and company-user principals. An allowed
    role only reaches users who are members of the caller's own company.
    """
    allowed_roles = frozenset(allowed)

    async def dependency(
        user_id: uuid.UUID,
        ctx: AuthContext = Depends(get_auth_context),
        container: Container = Depends(get_container),
    ) -> AuthContext:
        if ctx.kind in USER_RECORD_KINDS and ctx.user_id == user_id:
            return ctx

        if ctx.role in allowed_roles and ctx.company_id is not None:
            try:
                await container.memberships.resolve_company_context(user_id, ctx.company_id)
            except NotFound:
                logger.info(f"{user_id} is not a member of company {ctx.company_id}")
            else:
                return ctx

        raise Forbidden()

    return dependency


def require_company_scope(*allowed: str) -> Callable[..., AuthContext]:
    """
    A company user acting on the company their token is scoped to.

    The ``company_id`` path parameter must equal the token's company and
    the role must be one of ``allowed``.
    """
    role_check = require_role(*allowed)

    def dependency(request: Request, ctx: AuthContext = Depends(role_check)) -> AuthContext:
        target = request.path_params.get("company_id")
        if ctx.company_id is None or str(ctx.company_id) != str(target):
            logger.info(f"{ctx.user_id} is not scoped to company {target}")
            raise Forbidden()
        return ctx

    return dependency


# =============================================================================
# Bot credentials (HTTP Basic)
# =============================================================================


basic_auth = HTTPBasic(auto_error=False)


def require_bot_credentials(
    credentials: HTTPBasicCredentials | None = Depends(basic_auth),
    container: Container = Depends(get_container),
) -> str:
    """
    Check HTTP Basic credentials against the configured bot account.

    Returns the username. Refuses everything when no bot account is set.
    """
    settings = container.settings
    if not credentials:
        raise Unauthorized("Authorization header required")
    if not (settings.bot_auth_username and settings.bot_auth_password):
        logger.warning("Bot token requested but no bot credentials are configured")
        raise Unauthorized("Invalid credentials")

    user_ok = secrets.compare_digest(
        credentials.username.encode(), settings.bot_auth_username.encode()
    )
    password_ok = secrets.compare_digest(
        credentials.password.encode(), settings.bot_auth_password.encode()
    )
    if not (user_ok and password_ok):
        logger.warning("Invalid bot credentials")
        raise Unauthorized("Invalid credentials")
    return credentials.username
