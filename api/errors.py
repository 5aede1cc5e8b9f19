"""Global exception handlers for FastAPI.

Each known auth error maps to one fixed status and code. Anything else is a
bug: it is logged with its traceback and answered with one generic message.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import (
    EmailAlreadyExistsError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    SessionExpiredError,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"

# exception type -> (status, code, fixed message or None to use str(exc))
AUTH_ERROR_MAP: dict[type[Exception], tuple[int, str, str | None]] = {
    EmailAlreadyExistsError: (409, ErrorCodes.ALREADY_EXISTS, None),
    # 417 is the status clients of this API already expect for unverified logins
    EmailNotVerifiedError: (417, ErrorCodes.EMAIL_NOT_VERIFIED, None),
    InvalidTokenError: (400, ErrorCodes.INVALID_TOKEN, None),
    InvalidCredentialsError: (401, ErrorCodes.INVALID_CREDENTIALS, "Invalid email or password"),
    UserNotFoundError: (404, ErrorCodes.NOT_FOUND, "User not found"),
    SessionExpiredError: (401, ErrorCodes.SESSION_EXPIRED, "Session has expired"),
}


def _json(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    def _make_handler(status_code: int, code: str, fixed_message: str | None):
        async def handler(request: Request, exc: Exception):
            logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
            return _json(status_code, code, fixed_message or str(exc))

        return handler

    for exc_type, (status_code, code, fixed_message) in AUTH_ERROR_MAP.items():
        app.add_exception_handler(exc_type, _make_handler(status_code, code, fixed_message))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _json(400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.debug(f"Validation failed for {request.url.path}: {exc.errors()}")
        fields = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'][1:])}: {err['msg']}"
            for err in exc.errors()
        )
        return _json(400, ErrorCodes.VALIDATION_ERROR, f"Validation failed: {fields}")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unexpected error at {request.url.path}")
        return _json(500, ErrorCodes.INTERNAL_ERROR, GENERIC_ERROR_MESSAGE)
