"""
Bearer authentication middleware.

Every request outside the public allow-list must carry
``Authorization: Bearer <jwt>``. A request moves through

    no token -> header present -> scheme ok -> signature ok
             -> claims decoded -> context attached

and any step that fails answers 401 with the standard envelope. The
description never says which step failed, except that a missing header is
reported as such.

Usage:
    app.add_middleware(
        BearerAuthMiddleware,
        tokens=container.tokens,
        public_paths=default_public_paths("/api/v1"),
    )
"""

from __future__ import annotations

import logging
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from warden.api.responses import respond
from warden.auth.context import AuthContext
from warden.auth.jwt import GENERIC_TOKEN_ERROR, TokenManager
from warden.core.errors import Unauthorized
from warden.integrations.sentry import set_user

logger = logging.getLogger(__name__)

MISSING_HEADER = "Authorization header required"

# Paths that never need a token, relative to the API prefix
PUBLIC_API_PATHS = (
    "/health",
    "/auth/register",
    "/auth/login",
    "/auth/refresh",
    "/auth/verify-email",
    "/auth/resend-code",
    "/auth/bot-token",  # guarded by HTTP Basic instead
)

# Absolute path prefixes served by FastAPI itself
PUBLIC_PREFIXES = ("/docs", "/redoc", "/openapi.json")


def default_public_paths(api_prefix: str, extra: Iterable[str] = ()) -> set[str]:
    """The built-in allow-list plus configured extras, all under the prefix."""
    paths = {"/health"}
    paths.update(f"{api_prefix}{p}" for p in PUBLIC_API_PATHS)
    paths.update(f"{api_prefix}{p if p.startswith('/') else '/' + p}" for p in extra)
    return paths


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Validates the bearer token and attaches an AuthContext."""

    def __init__(self, app, tokens: TokenManager, public_paths: Iterable[str] = ()):
        super().__init__(app)
        self.tokens = tokens
        self.public_paths = {p.rstrip("/") or "/" for p in public_paths}

    def is_public(self, path: str) -> bool:
        if (path.rstrip("/") or "/") in self.public_paths:
            return True
        return any(path == p or path.startswith(p + "/") for p in PUBLIC_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        # CORS preflight carries no credentials
        if request.method == "OPTIONS" or self.is_public(request.url.path):
            return await call_next(request)

        header = request.headers.get("authorization")
        if not header:
            return self._reject(request, MISSING_HEADER)

        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            return self._reject(request, GENERIC_TOKEN_ERROR)

        try:
            principal = self.tokens.verify(token)
        except Unauthorized as e:
            logger.debug(f"Token rejected on {request.url.path}: {e.message}")
            return self._reject(request, GENERIC_TOKEN_ERROR)

        ctx = AuthContext(principal=principal)
        request.state.auth = ctx
        set_user(str(ctx.user_id), kind=ctx.kind.value)
        return await call_next(request)

    def _reject(self, request: Request, description: str):
        logger.warning(f"Unauthorized access attempt: {request.method} {request.url.path}")
        return respond(401, description, headers={"WWW-Authenticate": "Bearer"})
