"""
FastAPI application for the warden identity service.

This is the HTTP API that frontends and other services authenticate
against. Build it with create_app(); uvicorn runs it in factory mode.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from warden.api import memberships, users
from warden.api.container import Container, build_container
from warden.api.responses import ok, respond
from warden.auth import routes as auth_routes
from warden.auth.middleware import BearerAuthMiddleware, default_public_paths
from warden.config import Settings, get_settings
from warden.core.errors import WardenError
from warden.integrations.sentry import init_sentry

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open and close the container's connections."""
    container: Container = app.state.container
    settings = container.settings

    if init_sentry(settings):
        logger.info("Sentry error tracking enabled")

    await container.startup()
    logger.info(f"{settings.app_name} API starting in {settings.environment} mode")

    yield

    await container.shutdown()
    logger.info(f"{settings.app_name} API shutting down")


# =============================================================================
# Error Handlers
# =============================================================================


async def handle_domain_error(request: Request, exc: WardenError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return respond(exc.status_code, exc.message, headers=headers)


async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return respond(422, "Validation error", errors)


async def handle_http_error(request: Request, exc: StarletteHTTPException):
    return respond(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return respond(500, "Internal server error")


# =============================================================================
# App Setup
# =============================================================================


def create_app(container: Container | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        container: Pre-built collaborators (tests); built from settings if None
        settings: Defaults to get_settings()
    """
    settings = settings or (container.settings if container else get_settings())
    container = container or build_container(settings)

    app = FastAPI(
        title="Warden API",
        description="Users, companies, roles and bearer tokens",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_exception_handler(WardenError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    # Last added runs first: CORS wraps auth so 401s carry CORS headers
    app.add_middleware(
        BearerAuthMiddleware,
        tokens=container.tokens,
        public_paths=default_public_paths(settings.api_prefix, settings.public_paths_list),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials="*" not in settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api = APIRouter(prefix=settings.api_prefix)
    api.include_router(auth_routes.router)
    api.include_router(users.router)
    api.include_router(memberships.router)

    @api.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return ok({"status": "healthy", "service": settings.app_name})

    app.include_router(api)
    app.add_api_route("/health", health_check, methods=["GET"], include_in_schema=False)

    return app
