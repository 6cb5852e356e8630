"""
Dependency container.

Builds every long-lived collaborator once from Settings and hands them to
routes through ``request.app.state.container``. Connections are opened in
startup() and closed in shutdown(), both driven by the app lifespan.

Without DATABASE_URL / REDIS_URL the in-memory implementations are used,
which is what tests and local development run on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from fastapi import Request

from warden.auth.jwt import TokenManager
from warden.auth.verification import VerificationCodeStore
from warden.config import Settings
from warden.core.tasks import FireAndForget
from warden.integrations.email import EmailSender, create_email_sender
from warden.services.membership import MembershipService
from warden.services.users import UserService
from warden.storage.base import CacheStorage, MembershipRepository, UserRepository
from warden.storage.local import (
    InMemoryCacheStorage,
    InMemoryMembershipRepository,
    InMemoryUserRepository,
)
from warden.storage.postgres import (
    PostgresDatabase,
    PostgresMembershipRepository,
    PostgresUserRepository,
)
from warden.storage.redis_cache import RedisCacheStorage

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    users_repo: UserRepository
    memberships_repo: MembershipRepository
    cache: CacheStorage
    email_sender: EmailSender
    tokens: TokenManager
    tasks: FireAndForget
    verification: VerificationCodeStore
    users: UserService
    memberships: MembershipService
    http_client: httpx.AsyncClient | None = None
    database: PostgresDatabase | None = None

    async def startup(self) -> None:
        if self.database is not None:
            await self.database.connect()
        logger.info("Container started")

    async def shutdown(self) -> None:
        await self.tasks.drain()
        await self.cache.close()
        if self.http_client is not None:
            await self.http_client.aclose()
        if self.database is not None:
            await self.database.disconnect()
        logger.info("Container stopped")


def build_container(
    settings: Settings,
    *,
    users_repo: UserRepository | None = None,
    memberships_repo: MembershipRepository | None = None,
    cache: CacheStorage | None = None,
    email_sender: EmailSender | None = None,
) -> Container:
    """
    Wire collaborators from settings.

    Any collaborator passed in explicitly replaces the configured one
    (tests pass in-memory stores and a recording email sender).
    """
    timeout = settings.request_timeout_seconds
    database = None

    if users_repo is None or memberships_repo is None:
        if settings.database_url:
            database = PostgresDatabase(
                settings.database_url,
                pool_size=settings.database_pool_size,
                timeout=timeout,
            )
            users_repo = users_repo or PostgresUserRepository(database)
            memberships_repo = memberships_repo or PostgresMembershipRepository(database)
            logger.info("Using PostgreSQL repositories")
        else:
            local_users = users_repo
            if not isinstance(local_users, InMemoryUserRepository):
                local_users = InMemoryUserRepository()
            users_repo = users_repo or local_users
            memberships_repo = memberships_repo or InMemoryMembershipRepository(local_users)
            logger.info("Using in-memory repositories")

    if cache is None:
        if settings.redis_url:
            cache = RedisCacheStorage.from_url(settings.redis_url, timeout=timeout)
        else:
            cache = InMemoryCacheStorage()

    http_client = httpx.AsyncClient(timeout=timeout)
    if email_sender is None:
        email_sender = create_email_sender(settings, http_client)

    tokens = TokenManager.from_settings(settings)
    tasks = FireAndForget()
    verification = VerificationCodeStore(
        cache=cache,
        users=users_repo,
        email_sender=email_sender,
        tasks=tasks,
        ttl_seconds=settings.verification_code_ttl_seconds,
    )
    memberships = MembershipService(memberships_repo)
    users = UserService(
        users=users_repo,
        memberships=memberships,
        tokens=tokens,
        verification=verification,
        hash_iterations=settings.password_hash_iterations,
        require_verified_email=settings.require_verified_email,
    )

    return Container(
        settings=settings,
        users_repo=users_repo,
        memberships_repo=memberships_repo,
        cache=cache,
        email_sender=email_sender,
        tokens=tokens,
        tasks=tasks,
        verification=verification,
        users=users,
        memberships=memberships,
        http_client=http_client,
        database=database,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container
