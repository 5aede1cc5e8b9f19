"""Security middleware for FastAPI - bearer token verification and subject context."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth.session import SessionTokenMinter
from auth.exceptions import SessionExpiredError
from api.base import error_response, ErrorCodes
from utils.user_context import set_current_email, clear_current_email


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Verifies `Authorization: Bearer <token>` on protected routes.

    On success the subject email is placed on request.state.email and in the
    user context for the duration of the request. Public paths bypass the
    check entirely.
    """

    PUBLIC_PATHS = [
        "/auth/register",
        "/auth/verify-email",
        "/auth/login",
        "/auth/verify-mfa",
        "/auth/forgot-password",
        "/auth/reset-password",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, session_minter: SessionTokenMinter):
        super().__init__(app)
        self._session_minter = session_minter

    def _is_public_path(self, path: str) -> bool:
        return any(path == public or path.startswith(public + "/") for public in self.PUBLIC_PATHS)

    def _unauthorized(self, code: str, message: str) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
            content=error_response(code, message).model_dump(mode="json"),
        )

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")

        if scheme.lower() != "bearer" or not token:
            return self._unauthorized(ErrorCodes.NOT_AUTHENTICATED, "Authentication required")

        try:
            email = self._session_minter.verify(token.strip())
        except SessionExpiredError:
            return self._unauthorized(ErrorCodes.SESSION_EXPIRED, "Session has expired")

        set_current_email(email)
        request.state.email = email

        try:
            return await call_next(request)
        finally:
            clear_current_email()
