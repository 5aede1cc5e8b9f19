"""Tests for api/errors.py - exception to status mapping at the HTTP boundary."""

from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.errors import GENERIC_ERROR_MESSAGE, register_error_handlers
from auth.api import create_auth_router
from auth.exceptions import (
    EmailAlreadyExistsError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    TokenFailure,
)
from auth.service import AuthService


@pytest.fixture
def mock_service():
    return Mock(spec=AuthService)


@pytest.fixture
def client(mock_service):
    """Auth router over a mocked service, without the bearer middleware."""
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(create_auth_router(mock_service), prefix="/auth")
    return TestClient(app, raise_server_exceptions=False)


def verify(client):
    return client.get("/auth/verify-email", params={"token": "t"})


class TestAuthErrorMapping:

    @pytest.mark.parametrize(
        "exc, status, code",
        [
            (EmailAlreadyExistsError("a@example.com"), 409, "ALREADY_EXISTS"),
            (EmailNotVerifiedError(), 417, "EMAIL_NOT_VERIFIED"),
            (InvalidTokenError(TokenFailure.EXPIRED), 400, "INVALID_TOKEN"),
            (InvalidCredentialsError(), 401, "INVALID_CREDENTIALS"),
        ],
    )
    def test_status_and_code(self, client, mock_service, exc, status, code):
        mock_service.confirm_email.side_effect = exc

        response = verify(client)

        assert response.status_code == status
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == code

    def test_token_message_passes_through(self, client, mock_service):
        mock_service.confirm_email.side_effect = InvalidTokenError(TokenFailure.EXPIRED)

        message = verify(client).json()["error"]["message"]

        assert message == "This verification link has expired. Please request a new one"

    def test_credentials_message_is_fixed(self, client, mock_service):
        mock_service.confirm_email.side_effect = InvalidCredentialsError("Invalid or expired MFA code")

        assert verify(client).json()["error"]["message"] == "Invalid email or password"


class TestUnexpectedErrors:

    def test_generic_500(self, client, mock_service):
        mock_service.confirm_email.side_effect = RuntimeError("connection string leaked here")

        response = verify(client)

        assert response.status_code == 500
        error = response.json()["error"]
        assert error == {"code": "INTERNAL_ERROR", "message": GENERIC_ERROR_MESSAGE}

    def test_every_fault_gets_the_same_message(self, client, mock_service):
        mock_service.confirm_email.side_effect = KeyError("users.password_hash")
        first = verify(client).json()["error"]["message"]

        mock_service.confirm_email.side_effect = ZeroDivisionError()
        second = verify(client).json()["error"]["message"]

        assert first == second == GENERIC_ERROR_MESSAGE

    def test_fault_is_logged_with_traceback(self, client, mock_service, caplog):
        mock_service.confirm_email.side_effect = RuntimeError("boom")

        verify(client)

        records = [r for r in caplog.records if r.name == "api.errors"]
        assert records and records[-1].exc_info is not None


class TestValueErrors:

    def test_value_error_is_400(self, client, mock_service):
        mock_service.reset_password.side_effect = ValueError("Password must be at most 72 bytes")

        response = client.post("/auth/reset-password", params={"token": "t", "newPassword": "x"})

        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "INVALID_REQUEST",
            "message": "Password must be at most 72 bytes",
        }
