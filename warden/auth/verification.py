"""
Email verification codes.

A code is six random digits kept in the cache under ``verify:<email>`` for a
limited time. Issuing a new code replaces the previous one. A successful
confirmation marks the email verified and deletes the code; a wrong guess
leaves it in place until it expires.
"""

from __future__ import annotations

import logging
import secrets

from warden.core.errors import CodeExpiredOrMissing, CodeMismatch
from warden.core.tasks import FireAndForget
from warden.integrations.email import EmailSender
from warden.storage.base import CacheStorage, UserRepository

logger = logging.getLogger(__name__)

KEY_PREFIX = "verify:"
DEFAULT_TTL_SECONDS = 300


def cache_key(email: str) -> str:
    return f"{KEY_PREFIX}{email}"


def generate_code() -> str:
    """Six decimal digits from a CSPRNG, zero padded."""
    return f"{secrets.randbelow(10**6):06d}"


class VerificationCodeStore:
    def __init__(
        self,
        cache: CacheStorage,
        users: UserRepository,
        email_sender: EmailSender,
        tasks: FireAndForget,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self.cache = cache
        self.users = users
        self.email_sender = email_sender
        self.tasks = tasks
        self.ttl_seconds = ttl_seconds

    async def issue_code(self, email: str) -> str:
        """
        Store a fresh code and send it in the background.

        The code is stored before this returns. Delivery failures are
        logged by the task tracker and never reach the caller.
        """
        code = generate_code()
        await self.cache.set(cache_key(email), code, ttl=self.ttl_seconds)
        self.tasks.spawn(
            self.email_sender.send_verification_code(email, code),
            description=f"verification email to {email}",
        )
        logger.info(f"Verification code issued for {email}")
        return code

    async def confirm(self, email: str, code: str) -> None:
        """
        Check a code and mark the email verified.

        Raises:
            CodeExpiredOrMissing: No live code for this email
            CodeMismatch: The code differs (the stored code stays valid)
            NotFound: The email has no user
        """
        key = cache_key(email)
        stored = await self.cache.get(key)
        if stored is None:
            raise CodeExpiredOrMissing()

        if not secrets.compare_digest(str(stored).encode(), code.encode()):
            logger.info(f"Wrong verification code for {email}")
            raise CodeMismatch()

        await self.users.set_email_verified(email)
        await self.cache.delete(key)
        logger.info(f"Email verified: {email}")
