"""
Tests for the user/credential service.
"""

import uuid

import pytest

from warden.auth.principal import CompanyUser, PlainUser
from warden.core.errors import (
    CodeMismatch,
    Conflict,
    EmailNotVerified,
    InvalidCredentials,
    InvalidOldPassword,
    NotFound,
    ValidationError,
)
from warden.core.models import MembershipType, UserCreate, UserUpdate
from warden.core.utils import NIL_UUID

EMAIL = "x@y.com"
PASSWORD = "secret1"


@pytest.fixture
def users(container):
    return container.users


def _new_user(email=EMAIL, password=PASSWORD):
    return UserCreate(first_name="Ann", last_name="Lee", email=email, password=password)


async def _register_verified(container, email=EMAIL, password=PASSWORD):
    user_id = await container.users.register(_new_user(email, password))
    await container.users_repo.set_email_verified(email)
    return user_id


# =============================================================================
# End to end
# =============================================================================


class TestRegisterLoginFlow:
    @pytest.mark.asyncio
    async def test_register_confirm_login(self, container, email_sender):
        users = container.users
        user_id = await users.register(_new_user())
        await container.tasks.drain()

        with pytest.raises(EmailNotVerified):
            await users.login(EMAIL, PASSWORD)

        code = email_sender.last_code(EMAIL)
        assert code is not None
        await users.verify_email(EMAIL, code)

        result = await users.login(EMAIL, PASSWORD)
        principal = container.tokens.verify(result.access_token)

        assert principal.subject_id == user_id
        assert result.user.id == user_id
        assert result.expires_in == 30 * 60
        assert container.tokens.refresh(result.refresh_token).access_token

    @pytest.mark.asyncio
    async def test_email_is_normalized(self, container, email_sender):
        user_id = await container.users.register(_new_user(email="Ann@Example.COM"))
        await container.tasks.drain()

        code = email_sender.last_code("ann@example.com")
        await container.users.verify_email("ANN@example.com", code)
        result = await container.users.login("ann@example.com", PASSWORD)

        assert result.user.id == user_id


# =============================================================================
# Register
# =============================================================================


class TestRegister:
    @pytest.mark.asyncio
    async def test_password_is_hashed(self, users, users_repo):
        user_id = await users.register(_new_user())

        stored = await users_repo.get_by_id(user_id)
        assert stored.password_hash
        assert PASSWORD not in stored.password_hash

    @pytest.mark.asyncio
    async def test_duplicate_email(self, users):
        await users.register(_new_user())

        with pytest.raises(Conflict):
            await users.register(_new_user())

    @pytest.mark.asyncio
    async def test_without_email_sends_nothing(self, container, email_sender):
        await container.users.register(UserCreate(first_name="Ann", last_name="Lee"))
        await container.tasks.drain()

        assert email_sender.sent == []

    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_fail_registration(self, container, email_sender):
        email_sender.fail = True

        user_id = await container.users.register(_new_user())
        await container.tasks.drain()

        assert await container.users.get(user_id)

    @pytest.mark.asyncio
    async def test_resend_code(self, container, email_sender):
        await container.users.register(_new_user())
        await container.users.resend_code(EMAIL)
        await container.tasks.drain()

        assert len(email_sender.sent) == 2
        # Only the latest code is live
        first, latest = email_sender.sent[0][1], email_sender.sent[1][1]
        if first != latest:
            with pytest.raises(CodeMismatch):
                await container.users.verify_email(EMAIL, first)
        await container.users.verify_email(EMAIL, latest)

    @pytest.mark.asyncio
    async def test_resend_unknown_email(self, users):
        with pytest.raises(NotFound):
            await users.resend_code("nobody@y.com")


# =============================================================================
# Login
# =============================================================================


class TestLogin:
    @pytest.mark.asyncio
    async def test_unknown_user_and_wrong_password_look_the_same(self, container):
        await _register_verified(container)

        with pytest.raises(InvalidCredentials) as unknown:
            await container.users.login("nobody@y.com", PASSWORD)
        with pytest.raises(InvalidCredentials) as wrong:
            await container.users.login(EMAIL, "wrong-password")

        assert unknown.value.message == wrong.value.message
        assert unknown.value.status_code == wrong.value.status_code == 401

    @pytest.mark.asyncio
    async def test_user_without_password(self, container):
        await container.users.register(UserCreate(first_name="Ann", last_name="Lee", email=EMAIL))
        await container.users_repo.set_email_verified(EMAIL)

        with pytest.raises(InvalidCredentials):
            await container.users.login(EMAIL, PASSWORD)

    @pytest.mark.asyncio
    async def test_wrong_password_before_verification(self, container):
        await container.users.register(_new_user())

        # The verification state is only revealed to the password holder
        with pytest.raises(InvalidCredentials):
            await container.users.login(EMAIL, "wrong-password")

    @pytest.mark.asyncio
    async def test_verification_not_required(self, container):
        container.users.require_verified_email = False
        await container.users.register(_new_user())

        result = await container.users.login(EMAIL, PASSWORD)

        assert isinstance(result.principal, PlainUser)

    @pytest.mark.asyncio
    async def test_plain_user_principal(self, container):
        user_id = await _register_verified(container)

        result = await container.users.login(EMAIL, PASSWORD)

        assert result.principal == PlainUser(
            id=user_id, email=EMAIL, first_name="Ann", last_name="Lee"
        )

    @pytest.mark.asyncio
    async def test_company_user_principal(self, container, memberships_repo):
        user_id = await _register_verified(container)
        role = memberships_repo.add_role("Lecturer")
        company_id = uuid.uuid4()
        await container.memberships.assign_membership(
            company_id, user_id, role.id, membership_type=MembershipType.UNIVERSITY
        )

        result = await container.users.login(EMAIL, PASSWORD)
        principal = container.tokens.verify(result.access_token)

        assert isinstance(principal, CompanyUser)
        assert principal.company_id == company_id
        assert principal.user_type == "university"

    @pytest.mark.asyncio
    async def test_last_login_recorded(self, container, memberships_repo):
        user_id = await _register_verified(container)
        role = memberships_repo.add_role("Lecturer")
        company_id = uuid.uuid4()
        await container.memberships.assign_membership(company_id, user_id, role.id)

        await container.users.login(EMAIL, PASSWORD)

        membership = await container.memberships.assign_membership(company_id, user_id, role.id)
        assert membership.last_login_at is not None


# =============================================================================
# Passwords and CRUD
# =============================================================================


class TestUpdatePassword:
    @pytest.mark.asyncio
    async def test_change(self, container):
        user_id = await _register_verified(container)

        await container.users.update_password(user_id, PASSWORD, "brand-new")

        with pytest.raises(InvalidCredentials):
            await container.users.login(EMAIL, PASSWORD)
        assert await container.users.login(EMAIL, "brand-new")

    @pytest.mark.asyncio
    async def test_wrong_old_password(self, container):
        user_id = await _register_verified(container)

        with pytest.raises(InvalidOldPassword):
            await container.users.update_password(user_id, "not-it", "brand-new")

    @pytest.mark.asyncio
    async def test_unknown_user(self, users):
        with pytest.raises(NotFound):
            await users.update_password(uuid.uuid4(), PASSWORD, "brand-new")

    @pytest.mark.asyncio
    async def test_empty_new_password(self, container):
        user_id = await _register_verified(container)

        with pytest.raises(ValidationError):
            await container.users.update_password(user_id, PASSWORD, "")


class TestUpdate:
    @pytest.mark.asyncio
    async def test_merges_non_empty_fields(self, users):
        user_id = await users.register(_new_user())

        await users.update(UserUpdate(id=user_id, first_name="Anna", last_name=""))

        user = await users.get(user_id)
        assert user.first_name == "Anna"
        assert user.last_name == "Lee"
        assert user.email == EMAIL

    @pytest.mark.asyncio
    async def test_new_email_needs_verification(self, container):
        user_id = await _register_verified(container)

        await container.users.update(UserUpdate(id=user_id, email="new@y.com"))

        user = await container.users.get(user_id)
        assert user.email == "new@y.com"
        assert not user.email_verified
        with pytest.raises(EmailNotVerified):
            await container.users.login("new@y.com", PASSWORD)

    @pytest.mark.asyncio
    async def test_same_email_keeps_verification(self, container):
        user_id = await _register_verified(container)

        await container.users.update(UserUpdate(id=user_id, email=EMAIL.upper()))

        assert (await container.users.get(user_id)).email_verified

    @pytest.mark.asyncio
    async def test_password_untouched(self, users, users_repo):
        user_id = await users.register(_new_user())
        before = (await users_repo.get_by_id(user_id)).password_hash

        await users.update(UserUpdate(id=user_id, first_name="Anna"))

        assert (await users_repo.get_by_id(user_id)).password_hash == before

    @pytest.mark.asyncio
    async def test_email_taken(self, users):
        await users.register(_new_user(email="a@y.com"))
        user_id = await users.register(_new_user(email="b@y.com"))

        with pytest.raises(Conflict):
            await users.update(UserUpdate(id=user_id, email="a@y.com"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [None, NIL_UUID])
    async def test_invalid_id(self, users, bad_id):
        with pytest.raises(ValidationError):
            await users.update(UserUpdate(id=bad_id, first_name="Anna"))

    @pytest.mark.asyncio
    async def test_unknown_user(self, users):
        with pytest.raises(NotFound):
            await users.update(UserUpdate(id=uuid.uuid4(), first_name="Anna"))


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete(self, users):
        user_id = await users.register(_new_user())

        await users.delete(user_id)

        with pytest.raises(NotFound):
            await users.get(user_id)

    @pytest.mark.asyncio
    async def test_nil_id(self, users):
        with pytest.raises(ValidationError):
            await users.delete(NIL_UUID)

    @pytest.mark.asyncio
    async def test_unknown(self, users):
        with pytest.raises(NotFound):
            await users.delete(uuid.uuid4())
