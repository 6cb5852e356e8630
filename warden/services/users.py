"""
User/credential service.

Registration, login, email verification and the password lifecycle.
Persistence goes through the UserRepository; tokens through the
TokenManager; codes through the VerificationCodeStore.

Mutations are recorded on the ``warden.audit`` logger. Audit lines carry
identifiers only, never passwords, hashes, tokens or codes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass

from warden.auth.jwt import TokenManager
from warden.auth.passwords import DEFAULT_ITERATIONS, DUMMY_HASH, hash_password, verify_password
from warden.auth.principal import CompanyUser, PlainUser, Principal
from warden.auth.verification import VerificationCodeStore
from warden.core.errors import (
    EmailNotVerified,
    InvalidCredentials,
    InvalidOldPassword,
    NotFound,
    ValidationError,
    WardenError,
)
from warden.core.models import User, UserCreate, UserUpdate
from warden.core.utils import parse_uuid
from warden.services.membership import MembershipService
from warden.storage.base import UserRepository

logger = logging.getLogger(__name__)
audit = logging.getLogger("warden.audit")


def normalize_email(email: str | None) -> str | None:
    if not email:
        return None
    return email.strip().lower()


@dataclass(frozen=True)
class LoginResult:
    user: User
    principal: Principal
    access_token: str
    refresh_token: str
    expires_in: int


class UserService:
    def __init__(
        self,
        users: UserRepository,
        memberships: MembershipService,
        tokens: TokenManager,
        verification: VerificationCodeStore,
        hash_iterations: int = DEFAULT_ITERATIONS,
        require_verified_email: bool = True,
    ):
        self.users = users
        self.memberships = memberships
        self.tokens = tokens
        self.verification = verification
        self.hash_iterations = hash_iterations
        self.require_verified_email = require_verified_email

    async def _hash(self, password: str) -> str:
        return await asyncio.to_thread(hash_password, password, self.hash_iterations)

    # =========================================================================
    # Registration & verification
    # =========================================================================

    async def register(self, data: UserCreate) -> uuid.UUID:
        """
        Create a user and, when an email is given, send a verification code.

        A failure to issue or deliver the code is logged; the user is
        created regardless.

        Raises:
            Conflict: The email is already registered
        """
        email = normalize_email(data.email)
        data = data.model_copy(update={"email": email})

        password_hash = await self._hash(data.password) if data.password else None
        user_id = await self.users.create(data, password_hash)
        audit.info(f"user.register id={user_id}")

        if email:
            try:
                await self.verification.issue_code(email)
            except WardenError as e:
                logger.warning(f"Could not issue verification code for {email}: {e.message}")

        return user_id

    async def resend_code(self, email: str) -> None:
        """Raises NotFound for an unknown email."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")
        await self.users.get_by_email(email)
        await self.verification.issue_code(email)

    async def verify_email(self, email: str, code: str) -> None:
        """
        Confirm a verification code.

        Raises:
            CodeExpiredOrMissing: No live code
            CodeMismatch: Wrong code (the code stays usable)
        """
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")
        await self.verification.confirm(email, code)
        audit.info(f"user.verify_email email={email}")

    # =========================================================================
    # Login
    # =========================================================================

    async def login(self, email: str, password: str) -> LoginResult:
        """
        Check credentials and issue tokens.

        Unknown users, users without a local password and wrong passwords
        all fail the same way, after the same amount of hashing work.

        Raises:
            InvalidCredentials: Bad email/password
            EmailNotVerified: Verified email is required and missing
        """
        email = normalize_email(email)
        user: User | None = None
        if email:
            try:
                user = await self.users.get_by_email(email)
            except NotFound:
                user = None

        stored_hash = user.password_hash if user and user.has_password else DUMMY_HASH
        password_ok = await asyncio.to_thread(verify_password, password, stored_hash)

        if user is None or not user.has_password or not password_ok:
            logger.info("Login failed: invalid credentials")
            raise InvalidCredentials()

        if self.require_verified_email and not user.email_verified:
            logger.info(f"Login refused for {user.id}: email not verified")
            raise EmailNotVerified()

        principal = await self._principal_for(user)
        pair = self.tokens.issue_pair(principal)

        try:
            await self.memberships.record_login(user.id)
        except WardenError as e:
            logger.warning(f"Could not record last login for {user.id}: {e.message}")

        audit.info(f"user.login id={user.id} kind={principal.kind.value}")
        return LoginResult(
            user=user,
            principal=principal,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
        )

    async def _principal_for(self, user: User) -> Principal:
        """Company user in the default active company, else a plain user."""
        default = await self.memberships.resolve_default_company(user.id)
        if default is None:
            return PlainUser(
                id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
            )
        company_id, membership_type = default
        return CompanyUser(
            id=user.id,
            company_id=company_id,
            user_type=membership_type.value,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )

    # =========================================================================
    # CRUD
    # =========================================================================

    async def get(self, user_id: uuid.UUID) -> User:
        return await self.users.get_by_id(user_id)

    async def update_password(self, user_id: uuid.UUID, old_password: str, new_password: str) -> None:
        """
        Replace the password after checking the current one.

        Raises:
            NotFound: Unknown user
            InvalidOldPassword: The current password does not verify
            ValidationError: The new password is empty
        """
        user = await self.users.get_by_id(user_id)

        old_ok = await asyncio.to_thread(verify_password, old_password, user.password_hash)
        if not old_ok:
            logger.info(f"Password change refused for {user_id}: old password mismatch")
            raise InvalidOldPassword()

        new_hash = await self._hash(new_password)
        await self.users.update(UserUpdate(id=user_id), password_hash=new_hash)
        audit.info(f"user.update_password id={user_id}")

    async def update(self, patch: UserUpdate) -> uuid.UUID:
        """
        Merge non-empty fields into the user. Passwords are not accepted here.

        Raises:
            ValidationError: Missing or nil id
            NotFound: Unknown user
            Conflict: The new email belongs to another user
        """
        if parse_uuid(patch.id) is None:
            raise ValidationError("Invalid user id")
        patch = patch.model_copy(update={"email": normalize_email(patch.email)})
        user_id = await self.users.update(patch)
        audit.info(f"user.update id={user_id} fields={sorted(patch.changes())}")
        return user_id

    async def delete(self, user_id: uuid.UUID) -> None:
        """
        Hard-delete a user.

        Raises:
            ValidationError: Nil id
            NotFound: Unknown user
        """
        if parse_uuid(user_id) is None:
            raise ValidationError("Invalid user id")
        await self.users.delete(user_id)
        audit.info(f"user.delete id={user_id}")
