"""
Tests for the HTTP surface: middleware, policies, routes and the envelope.
"""

import base64
import uuid

import pytest

from warden.auth.context import AuthContext
from warden.auth.principal import BotPrincipal, CompanyUser, PlainUser, StudentPrincipal
from warden.core.models import MembershipType

from conftest import bearer

API = "/api/v1"
EMAIL = "x@y.com"
PASSWORD = "secret1"


def _basic(username: str, password: str) -> dict[str, str]:
    raw = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {raw}"}


def _register(client, email=EMAIL, password=PASSWORD):
    response = client.post(
        f"{API}/auth/register",
        json={"first_name": "Ann", "last_name": "Lee", "email": email, "password": password},
    )
    assert response.status_code == 201
    return uuid.UUID(response.json()["data"]["id"])


def _login(client, email=EMAIL, password=PASSWORD):
    return client.post(f"{API}/auth/login", json={"email": email, "password": password})


def _access(container, principal) -> str:
    token, _ = container.tokens.issue_access(principal)
    return token


# =============================================================================
# Middleware
# =============================================================================


class TestBearerMiddleware:
    def test_health_is_public(self, client):
        for path in ("/health", f"{API}/health"):
            response = client.get(path)

            assert response.status_code == 200
            assert response.json()["data"]["status"] == "healthy"

    @pytest.mark.parametrize("path", ["/docsanything", "/openapi.json.bak", "/redoc-private"])
    def test_docs_prefix_lookalikes_need_token(self, client, path):
        assert client.get(path).status_code == 401

    def test_docs_are_public(self, client):
        assert client.get("/openapi.json").status_code == 200

    def test_missing_header(self, client):
        response = client.get(f"{API}/auth/me")

        assert response.status_code == 401
        assert response.json() == {
            "status_code": 401,
            "description": "Authorization header required",
        }

    @pytest.mark.parametrize(
        "header",
        ["Basic abc", "Bearer", "Bearer not-a-jwt", "Token abc.def.ghi"],
    )
    def test_bad_header(self, client, header):
        response = client.get(f"{API}/auth/me", headers={"Authorization": header})

        assert response.status_code == 401
        assert response.json()["description"] == "Invalid or expired token"

    def test_refresh_token_rejected_as_bearer(self, client, container):
        refresh = container.tokens.issue_refresh(PlainUser(id=uuid.uuid4()))

        response = client.get(f"{API}/auth/me", headers=bearer(refresh))

        assert response.status_code == 401

    def test_preflight_passes(self, client):
        response = client.options(
            f"{API}/auth/me",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code != 401

    def test_context_attached(self, client, container):
        student = StudentPrincipal(id=uuid.uuid4(), pinfl="12345678901234")

        response = client.get(f"{API}/auth/me", headers=bearer(_access(container, student)))

        assert response.status_code == 200
        principal = response.json()["data"]["principal"]
        assert principal["kind"] == "student"
        assert principal["role"] == "student"
        assert principal["pinfl"] == "12345678901234"
        assert principal["email"] is None


class TestAuthContextRole:
    def test_roles(self):
        user_id = uuid.uuid4()

        assert AuthContext(PlainUser(id=user_id)).role == "user"
        assert AuthContext(StudentPrincipal(id=user_id)).role == "student"
        assert AuthContext(BotPrincipal(student_id=user_id, pinfl="1")).role is None
        company = AuthContext(
            CompanyUser(id=user_id, company_id=uuid.uuid4(), user_type="university")
        )
        assert company.role == "university"
        assert company.company_id is not None


# =============================================================================
# Auth routes
# =============================================================================


class TestAuthRoutes:
    def test_full_flow(self, client, container, email_sender):
        user_id = _register(client)

        response = _login(client)
        assert response.status_code == 403
        assert response.json()["description"] == "Email not verified"

        code = email_sender.last_code(EMAIL)
        response = client.post(
            f"{API}/auth/verify-email", json={"email": EMAIL, "code": code}
        )
        assert response.status_code == 200

        response = _login(client)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["id"] == str(user_id)
        assert data["user"]["email_verified"] is True
        assert "password_hash" not in data["user"]

        me = client.get(f"{API}/auth/me", headers=bearer(data["access_token"]))
        assert me.status_code == 200
        assert me.json()["data"]["user"]["id"] == str(user_id)
        assert me.json()["data"]["company"] is None

        refreshed = client.post(f"{API}/auth/refresh", json={"refresh_token": data["refresh_token"]})
        assert refreshed.status_code == 200
        assert refreshed.json()["data"]["token_type"] == "bearer"

        logout = client.post(f"{API}/auth/logout", headers=bearer(data["access_token"]))
        assert logout.status_code == 200

    def test_wrong_code(self, client):
        _register(client)

        response = client.post(f"{API}/auth/verify-email", json={"email": EMAIL, "code": "12345"})
        assert response.status_code == 422

        response = client.post(f"{API}/auth/verify-email", json={"email": "nobody@y.com", "code": "123456"})
        assert response.status_code == 400
        assert response.json()["description"] == "Code expired or not found"

    def test_invalid_credentials(self, client):
        _register(client)

        response = _login(client, password="wrong-password")

        assert response.status_code == 401
        assert response.json()["description"] == "Invalid credentials"

    def test_duplicate_registration(self, client):
        _register(client)

        response = client.post(
            f"{API}/auth/register",
            json={"first_name": "Ann", "last_name": "Lee", "email": EMAIL, "password": PASSWORD},
        )

        assert response.status_code == 409

    def test_validation_error_envelope(self, client):
        response = client.post(f"{API}/auth/register", json={"first_name": "A"})

        body = response.json()
        assert response.status_code == 422
        assert body["status_code"] == 422
        assert body["data"]

    def test_me_with_company_context(self, client, container, memberships_repo):
        user_id = _register(client)
        company = memberships_repo.add_company("Acme")
        role = memberships_repo.add_role("Manager")
        permission = memberships_repo.add_permission("users", "user", "view")
        memberships_repo.grant(role.id, permission.id)
        token = _access(container, CompanyUser(id=user_id, company_id=company.id, user_type="company"))

        response = client.get(f"{API}/auth/me", headers=bearer(token))
        assert response.status_code == 200
        assert response.json()["data"]["company"] is None

        client.put(
            f"{API}/companies/{company.id}/users",
            json={"user_id": str(user_id), "role_id": str(role.id)},
            headers=bearer(token),
        )
        company_ctx = client.get(f"{API}/auth/me", headers=bearer(token)).json()["data"]["company"]
        assert company_ctx["company_name"] == "Acme"
        assert company_ctx["permissions"] == ["users.user.view"]


class TestBotToken:
    def test_issue(self, client, container):
        student_id = uuid.uuid4()

        response = client.post(
            f"{API}/auth/bot-token",
            json={"student_id": str(student_id), "pinfl": "12345678901234"},
            headers=_basic("bot", "bot-password"),
        )

        assert response.status_code == 200
        token = response.json()["data"]["access_token"]
        assert container.tokens.parse_bot_token(token) == BotPrincipal(
            student_id=student_id, pinfl="12345678901234"
        )

        me = client.get(f"{API}/auth/me", headers=bearer(token))
        assert me.json()["data"]["principal"]["kind"] == "bot"

    def test_wrong_credentials(self, client):
        response = client.post(
            f"{API}/auth/bot-token",
            json={"student_id": str(uuid.uuid4()), "pinfl": "1"},
            headers=_basic("bot", "nope"),
        )

        assert response.status_code == 401


# =============================================================================
# Users
# =============================================================================


class TestUserRoutes:
    def test_self_access(self, client, container):
        user_id = _register(client)
        token = _access(container, PlainUser(id=user_id))

        response = client.get(f"{API}/users/{user_id}", headers=bearer(token))
        assert response.status_code == 200
        assert response.json()["data"]["first_name"] == "Ann"

        response = client.put(
            f"{API}/users/{user_id}", json={"first_name": "Anna"}, headers=bearer(token)
        )
        assert response.status_code == 200
        assert client.get(f"{API}/users/{user_id}", headers=bearer(token)).json()["data"]["first_name"] == "Anna"

    def test_other_user_forbidden(self, client, container):
        user_id = _register(client)
        token = _access(container, PlainUser(id=uuid.uuid4()))

        response = client.get(f"{API}/users/{user_id}", headers=bearer(token))

        assert response.status_code == 403

    def test_company_admin_reads_own_member(self, client, container, memberships_repo):
        user_id = _register(client)
        company_id = uuid.uuid4()
        role = memberships_repo.add_role("Lecturer")
        admin_token = _access(
            container, CompanyUser(id=uuid.uuid4(), company_id=company_id, user_type="company")
        )
        client.put(
            f"{API}/companies/{company_id}/users",
            json={"user_id": str(user_id), "role_id": str(role.id)},
            headers=bearer(admin_token),
        )

        response = client.get(f"{API}/users/{user_id}", headers=bearer(admin_token))

        assert response.status_code == 200

    def test_company_admin_cannot_reach_other_tenant(self, client, container, memberships_repo):
        user_id = _register(client)
        own_company, other_company = uuid.uuid4(), uuid.uuid4()
        role = memberships_repo.add_role("Lecturer")
        other_admin = _access(
            container, CompanyUser(id=uuid.uuid4(), company_id=other_company, user_type="company")
        )
        client.put(
            f"{API}/companies/{other_company}/users",
            json={"user_id": str(user_id), "role_id": str(role.id)},
            headers=bearer(other_admin),
        )
        token = _access(
            container, CompanyUser(id=uuid.uuid4(), company_id=own_company, user_type="company")
        )

        assert client.get(f"{API}/users/{user_id}", headers=bearer(token)).status_code == 403
        assert client.delete(f"{API}/users/{user_id}", headers=bearer(token)).status_code == 403
        assert client.get(f"{API}/users/{user_id}", headers=bearer(other_admin)).status_code == 200

    def test_company_admin_without_member_forbidden(self, client, container):
        user_id = _register(client)
        token = _access(
            container, CompanyUser(id=uuid.uuid4(), company_id=uuid.uuid4(), user_type="university")
        )

        assert client.get(f"{API}/users/{user_id}", headers=bearer(token)).status_code == 403

    def test_bot_cannot_act_as_user(self, client, container):
        user_id = _register(client)
        token = container.tokens.issue_bot_token(BotPrincipal(student_id=user_id, pinfl="1"))

        assert client.get(f"{API}/users/{user_id}", headers=bearer(token)).status_code == 403
        assert client.delete(f"{API}/users/{user_id}", headers=bearer(token)).status_code == 403
        response = client.put(
            f"{API}/users/{user_id}/password",
            json={"old_password": PASSWORD, "new_password": "brand-new"},
            headers=bearer(token),
        )
        assert response.status_code == 403

        owner = _access(container, PlainUser(id=user_id))
        assert client.get(f"{API}/users/{user_id}", headers=bearer(owner)).status_code == 200

    def test_student_cannot_act_as_user(self, client, container):
        user_id = _register(client)
        token = _access(container, StudentPrincipal(id=user_id, pinfl="1"))

        assert client.delete(f"{API}/users/{user_id}", headers=bearer(token)).status_code == 403

    def test_change_password(self, client, container):
        user_id = _register(client)
        token = _access(container, PlainUser(id=user_id))

        wrong = client.put(
            f"{API}/users/{user_id}/password",
            json={"old_password": "nope", "new_password": "brand-new"},
            headers=bearer(token),
        )
        assert wrong.status_code == 400
        assert wrong.json()["description"] == "Invalid old password"

        ok = client.put(
            f"{API}/users/{user_id}/password",
            json={"old_password": PASSWORD, "new_password": "brand-new"},
            headers=bearer(token),
        )
        assert ok.status_code == 200

    def test_delete_then_not_found(self, client, container):
        user_id = _register(client)
        token = _access(container, PlainUser(id=user_id))

        assert client.delete(f"{API}/users/{user_id}", headers=bearer(token)).status_code == 200

        response = client.get(f"{API}/users/{user_id}", headers=bearer(token))
        assert response.status_code == 404
        assert response.json()["status_code"] == 404

    def test_malformed_id(self, client, container):
        token = _access(
            container, CompanyUser(id=uuid.uuid4(), company_id=uuid.uuid4(), user_type="company")
        )

        response = client.get(f"{API}/users/not-a-uuid", headers=bearer(token))

        assert response.status_code == 422


# =============================================================================
# Memberships
# =============================================================================


class TestMembershipRoutes:
    @pytest.fixture
    def company_id(self):
        return uuid.uuid4()

    @pytest.fixture
    def admin_token(self, container, company_id):
        principal = CompanyUser(
            id=uuid.uuid4(), company_id=company_id, user_type=MembershipType.COMPANY.value
        )
        return _access(container, principal)

    def test_assign_list_update_remove(self, client, memberships_repo, company_id, admin_token):
        user_id = _register(client)
        role = memberships_repo.add_role("Lecturer")
        base = f"{API}/companies/{company_id}/users"

        response = client.put(
            base,
            json={"user_id": str(user_id), "role_id": str(role.id)},
            headers=bearer(admin_token),
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "active"

        listing = client.get(base, params={"page": 1, "page_size": 10}, headers=bearer(admin_token))
        assert listing.status_code == 200
        assert listing.json()["data"]["meta"]["total"] == 1
        assert listing.json()["data"]["items"][0]["user"]["id"] == str(user_id)

        response = client.patch(
            f"{base}/{user_id}", json={"status": "inactive"}, headers=bearer(admin_token)
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "inactive"
        assert response.json()["data"]["role_id"] == str(role.id)

        assert client.delete(f"{base}/{user_id}", headers=bearer(admin_token)).status_code == 200
        assert client.delete(f"{base}/{user_id}", headers=bearer(admin_token)).status_code == 404

    def test_plain_user_forbidden(self, client, container, company_id):
        token = _access(container, PlainUser(id=uuid.uuid4()))

        response = client.get(f"{API}/companies/{company_id}/users", headers=bearer(token))

        assert response.status_code == 403
        assert response.json()["description"] == "Access denied: insufficient permissions"

    def test_other_company_forbidden(self, client, admin_token):
        response = client.get(f"{API}/companies/{uuid.uuid4()}/users", headers=bearer(admin_token))

        assert response.status_code == 403

    def test_bot_forbidden(self, client, container, company_id):
        token = container.tokens.issue_bot_token(BotPrincipal(student_id=uuid.uuid4(), pinfl="1"))

        response = client.get(f"{API}/companies/{company_id}/users", headers=bearer(token))

        assert response.status_code == 403
