"""HTTP routes for authentication.

Auth errors propagate to the handlers in api/errors.py, which own the
status code mapping.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from auth.service import AuthService
from auth.types import LoginRequest, RegisterRequest, VerifyMfaRequest
from api.base import success_response, error_response, ErrorCodes
from utils.user_context import get_current_email


def _missing_parameter(name: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_response(
            ErrorCodes.INVALID_REQUEST,
            f"{name} parameter is required",
        ).model_dump(mode="json"),
    )


def create_auth_router(auth_service: AuthService) -> APIRouter:
    """Create auth router with injected service."""
    router = APIRouter(tags=["auth"])

    @router.post("/register", status_code=201)
    def register(body: RegisterRequest):
        """Create an account and send the verification email. Does not log in."""
        result = auth_service.register(
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
        )
        return success_response(result.model_dump(mode="json"))

    @router.get("/verify-email")
    def verify_email(token: str | None = Query(None)):
        if not token:
            return _missing_parameter("Token")
        return success_response({"message": auth_service.confirm_email(token)})

    @router.post("/login")
    def login(body: LoginRequest):
        """Log in.

        Returns either {access_token, token_type, expires_at, user} or, when
        the account has MFA enabled, {message, mfa_required: true}.
        """
        result = auth_service.login(email=body.email, password=body.password)
        return success_response(result.model_dump(mode="json"))

    @router.post("/verify-mfa")
    def verify_mfa(body: VerifyMfaRequest):
        result = auth_service.verify_mfa(email=body.email, code=body.code)
        return success_response(result.model_dump(mode="json"))

    @router.post("/forgot-password")
    def forgot_password(email: str | None = Query(None)):
        if not email:
            return _missing_parameter("Email")
        return success_response({"message": auth_service.forgot_password(email)})

    @router.post("/reset-password")
    def reset_password(
        token: str | None = Query(None),
        new_password: str | None = Query(None, alias="newPassword"),
    ):
        if not token:
            return _missing_parameter("Token")
        if not new_password:
            return _missing_parameter("newPassword")
        return success_response({"message": auth_service.reset_password(token, new_password)})

    @router.get("/me")
    async def get_current_user():
        """Profile of the bearer token's subject."""
        try:
            email = get_current_email()
        except RuntimeError:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                ).model_dump(mode="json"),
            )

        profile = auth_service.get_current_user(email)
        return success_response(profile.model_dump(mode="json"))

    return router
