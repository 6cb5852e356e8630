# =============================================================================
# Auth API Routes
# =============================================================================
#
# Endpoints:
#   POST /auth/register      - Create account, emails a verification code
#   POST /auth/login         - Get tokens
#   POST /auth/refresh       - Refresh tokens
#   POST /auth/logout        - Stateless; the client discards its tokens
#   POST /auth/verify-email  - Confirm the emailed code
#   POST /auth/resend-code   - Send a fresh code
#   POST /auth/bot-token     - Bot token for a student (HTTP Basic)
#   GET  /auth/me            - Current principal and company context
#
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from warden.api.container import Container, get_container
from warden.api.responses import created, ok
from warden.auth.context import AuthContext
from warden.auth.policies import require_auth, require_bot_credentials
from warden.auth.principal import BotPrincipal, PrincipalKind
from warden.core.errors import NotFound
from warden.core.models import (
    BotTokenRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    ResendCodeRequest,
    UserCreate,
    UserResponse,
    VerifyEmailRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# Public Endpoints
# =============================================================================


@router.post("/register", status_code=201)
async def register(data: UserCreate, container: Container = Depends(get_container)):
    """
    Create a new account.

    When an email is given a verification code is sent to it; login is
    refused until the code is confirmed.
    """
    user_id = await container.users.register(data)
    return created({"id": user_id})


@router.post("/login")
async def login(data: LoginRequest, container: Container = Depends(get_container)):
    """Authenticate and get tokens."""
    result = await container.users.login(data.email, data.password)
    return ok(
        LoginResponse(
            user=UserResponse.from_user(result.user),
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=result.expires_in,
        )
    )


@router.post("/refresh")
async def refresh(data: RefreshRequest, container: Container = Depends(get_container)):
    """Use a refresh token to get a new token pair."""
    return ok(container.tokens.refresh(data.refresh_token))


@router.post("/verify-email")
async def verify_email(data: VerifyEmailRequest, container: Container = Depends(get_container)):
    await container.users.verify_email(data.email, data.code)
    return ok(description="Email verified successfully")


@router.post("/resend-code")
async def resend_code(data: ResendCodeRequest, container: Container = Depends(get_container)):
    await container.users.resend_code(data.email)
    return ok(description="Verification code sent")


@router.post("/bot-token")
async def bot_token(
    data: BotTokenRequest,
    username: str = Depends(require_bot_credentials),
    container: Container = Depends(get_container),
):
    """Issue a bot token acting for a student."""
    token = container.tokens.issue_bot_token(
        BotPrincipal(student_id=data.student_id, pinfl=data.pinfl)
    )
    logger.info(f"Bot token issued by {username} for student {data.student_id}")
    return ok({
        "access_token": token,
        "token_type": "bearer",
        "expires_in": int(container.tokens.bot_ttl.total_seconds()),
    })


# =============================================================================
# Protected Endpoints
# =============================================================================


@router.post("/logout")
async def logout(ctx: AuthContext = Depends(require_auth())):
    """
    Logout (client should discard tokens).

    Tokens are stateless and stay valid until they expire.
    """
    logger.info(f"Logout: {ctx.user_id}")
    return ok(description="Logged out successfully")


@router.get("/me")
async def me(
    ctx: AuthContext = Depends(require_auth()),
    container: Container = Depends(get_container),
):
    """
    The current principal, its user record and, for company users,
    the resolved company context.
    """
    data: dict = {"principal": ctx.to_dict(), "user": None, "company": None}

    if ctx.kind in (PrincipalKind.USER, PrincipalKind.COMPANY_USER):
        user = await container.users.get(ctx.user_id)
        data["user"] = UserResponse.from_user(user)

    if ctx.company_id is not None:
        try:
            data["company"] = await container.memberships.resolve_company_context(
                ctx.user_id, ctx.company_id
            )
        except NotFound:
            # Membership removed after the token was issued
            logger.info(f"No membership for {ctx.user_id} in {ctx.company_id}")

    return ok(data)
