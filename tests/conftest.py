"""
Shared fixtures: settings, in-memory stores, a recording email sender,
and a container/app wired with all of them.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from warden.api.app import create_app
from warden.api.container import Container, build_container
from warden.auth.jwt import TokenManager
from warden.config import Settings
from warden.core.errors import DeliveryError
from warden.integrations.email import EmailSender
from warden.storage.local import (
    InMemoryCacheStorage,
    InMemoryMembershipRepository,
    InMemoryUserRepository,
)

TEST_SECRET = "test-secret-key-for-hs256-signing-0123"


class RecordingEmailSender(EmailSender):
    """Keeps sent codes in memory; optionally fails every delivery."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def send_verification_code(self, to: str, code: str) -> None:
        if self.fail:
            raise DeliveryError("provider down")
        self.sent.append((to, code))

    def last_code(self, email: str) -> str | None:
        for to, code in reversed(self.sent):
            if to == email:
                return code
        return None


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        environment="test",
        jwt_secret_key=TEST_SECRET,
        password_hash_iterations=1_000,
        require_verified_email=True,
        email_provider="log",
        bot_auth_username="bot",
        bot_auth_password="bot-password",
    )


@pytest.fixture
def tokens(settings):
    return TokenManager.from_settings(settings)


@pytest.fixture
def users_repo():
    return InMemoryUserRepository()


@pytest.fixture
def memberships_repo(users_repo):
    return InMemoryMembershipRepository(users_repo)


@pytest.fixture
def cache():
    return InMemoryCacheStorage()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def container(settings, users_repo, memberships_repo, cache, email_sender) -> Container:
    return build_container(
        settings,
        users_repo=users_repo,
        memberships_repo=memberships_repo,
        cache=cache,
        email_sender=email_sender,
    )


@pytest.fixture
def client(container):
    """HTTP client; the lifespan runs on enter and exit."""
    with TestClient(create_app(container)) as test_client:
        yield test_client


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
