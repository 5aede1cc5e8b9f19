"""Tests for auth API routes - full app over in-memory storage."""

import pytest
from fastapi.testclient import TestClient

from auth.service import AuthMessages
from auth.types import SecretKind
from main import AuthComponents, create_app


@pytest.fixture
def client(auth_service, session_minter, dispatcher):
    app = create_app(
        AuthComponents(service=auth_service, session_minter=session_minter, dispatcher=dispatcher)
    )
    return TestClient(app)


def register(client, email="a@example.com", password="pw12345"):
    return client.post(
        "/auth/register",
        json={"email": email, "password": password, "first_name": "A", "last_name": "B"},
    )


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegisterRoute:

    def test_created(self, client):
        response = register(client)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"] == {"email": "a@example.com", "message": AuthMessages.REGISTERED}

    def test_duplicate_is_409(self, client):
        register(client)
        response = register(client)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_EXISTS"

    def test_invalid_body_is_400(self, client):
        response = register(client, email="not-an-email")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "email" in error["message"]

    def test_password_too_long_for_bcrypt_is_400(self, client):
        response = register(client, password="x" * 100)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"


class TestVerifyEmailRoute:

    def test_confirms(self, client, token_store):
        register(client)
        token = token_store.rows[0].value

        response = client.get("/auth/verify-email", params={"token": token})

        assert response.status_code == 200
        assert response.json()["data"]["message"] == AuthMessages.EMAIL_VERIFIED

    def test_reused_token_is_400(self, client, token_store):
        register(client)
        token = token_store.rows[0].value
        client.get("/auth/verify-email", params={"token": token})

        response = client.get("/auth/verify-email", params={"token": token})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_TOKEN"
        assert "already been used" in error["message"]

    def test_missing_token_is_400(self, client):
        response = client.get("/auth/verify-email")

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Token parameter is required"


class TestLoginRoute:

    def test_unverified_is_417(self, client):
        register(client)

        response = client.post("/auth/login", json={"email": "a@example.com", "password": "pw12345"})

        assert response.status_code == 417
        assert response.json()["error"]["code"] == "EMAIL_NOT_VERIFIED"

    def test_unknown_and_wrong_password_look_the_same(self, client, make_user):
        make_user("a@example.com")

        wrong = client.post("/auth/login", json={"email": "a@example.com", "password": "nope"})
        ghost = client.post("/auth/login", json={"email": "ghost@example.com", "password": "nope"})

        assert wrong.status_code == ghost.status_code == 401
        assert wrong.json()["error"] == ghost.json()["error"] == {
            "code": "INVALID_CREDENTIALS",
            "message": "Invalid email or password",
        }

    def test_success_returns_token_and_profile(self, client, make_user):
        make_user("a@example.com")

        response = client.post("/auth/login", json={"email": "a@example.com", "password": "pw12345"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["token_type"] == "Bearer"
        assert data["access_token"]
        assert data["expires_at"]
        assert data["user"]["email"] == "a@example.com"
        assert "password_hash" not in data["user"]

    def test_mfa_shape_has_no_token(self, client, make_user):
        make_user("a@example.com", mfa=True)

        response = client.post("/auth/login", json={"email": "a@example.com", "password": "pw12345"})

        assert response.status_code == 200
        assert response.json()["data"] == {
            "message": "MFA code sent to your email",
            "mfa_required": True,
        }


class TestVerifyMfaRoute:

    def test_code_exchanged_for_token(self, client, make_user, code_store):
        user = make_user("a@example.com", mfa=True)
        client.post("/auth/login", json={"email": "a@example.com", "password": "pw12345"})
        code = code_store.latest(user.id, SecretKind.MFA_CODE).value

        response = client.post("/auth/verify-mfa", json={"email": "a@example.com", "code": code})

        assert response.status_code == 200
        assert response.json()["data"]["access_token"]

    def test_bad_code_is_401(self, client, make_user):
        make_user("a@example.com", mfa=True)
        client.post("/auth/login", json={"email": "a@example.com", "password": "pw12345"})

        response = client.post("/auth/verify-mfa", json={"email": "a@example.com", "code": "abc"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"


class TestPasswordResetRoutes:

    def test_forgot_same_answer(self, client, make_user):
        make_user("real@example.com")

        real = client.post("/auth/forgot-password", params={"email": "real@example.com"})
        ghost = client.post("/auth/forgot-password", params={"email": "ghost@example.com"})

        assert real.status_code == ghost.status_code == 200
        assert real.json()["data"] == ghost.json()["data"] == {"message": AuthMessages.PASSWORD_RESET_SENT}

    def test_forgot_missing_email_is_400(self, client):
        response = client.post("/auth/forgot-password")

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Email parameter is required"

    def test_reset_then_login_with_new_password(self, client, make_user, token_store):
        user = make_user("a@example.com")
        client.post("/auth/forgot-password", params={"email": "a@example.com"})
        token = token_store.latest(user.id, SecretKind.PASSWORD_RESET).value

        response = client.post(
            "/auth/reset-password",
            params={"token": token, "newPassword": "brand-new-pw"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["message"] == AuthMessages.PASSWORD_RESET_DONE
        login = client.post("/auth/login", json={"email": "a@example.com", "password": "brand-new-pw"})
        assert login.status_code == 200

    def test_reset_with_verification_token_is_400(self, client, token_store):
        register(client)
        token = token_store.rows[0].value

        response = client.post(
            "/auth/reset-password",
            params={"token": token, "newPassword": "brand-new-pw"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid token type for password reset"

    def test_reset_missing_password_is_400(self, client):
        response = client.post("/auth/reset-password", params={"token": "abc"})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "newPassword parameter is required"


class TestMeRoute:

    def _login(self, client) -> str:
        response = client.post("/auth/login", json={"email": "a@example.com", "password": "pw12345"})
        return response.json()["data"]["access_token"]

    def test_returns_profile(self, client, make_user):
        make_user("a@example.com")

        response = client.get("/auth/me", headers=bearer(self._login(client)))

        assert response.status_code == 200
        assert response.json()["data"]["email"] == "a@example.com"

    def test_requires_token(self, client):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    def test_bad_token(self, client):
        response = client.get("/auth/me", headers=bearer("not.a.jwt"))

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "SESSION_EXPIRED"

    def test_deleted_account_is_404(self, client, make_user, auth_db):
        user = make_user("a@example.com")
        token = self._login(client)
        auth_db.delete_user(user.id)

        response = client.get("/auth/me", headers=bearer(token))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestHealth:

    def test_public(self, client):
        assert client.get("/health").json() == {"status": "ok"}
