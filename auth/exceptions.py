"""Typed exceptions for auth failures."""

from enum import Enum


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class EmailAlreadyExistsError(AuthError):
    """Registration attempted with an email that already belongs to an account."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class EmailNotVerifiedError(AuthError):
    """
    Login attempted before the email verification link was followed.

    Unlike a missing account, this state is deliberately reported to the caller.
    """

    def __init__(self):
        super().__init__("Email needs to be verified before logging in")


class TokenFailure(Enum):
    """Why a verification or reset token was rejected."""

    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    WRONG_TYPE = "wrong_type"


class InvalidTokenError(AuthError):
    """
    Verification or password reset token is unusable.

    All four reasons surface to clients as the same error kind; only the
    message differs.
    """

    MESSAGES = {
        TokenFailure.NOT_FOUND: "Invalid verification token",
        TokenFailure.ALREADY_USED: "This verification link has already been used",
        TokenFailure.EXPIRED: "This verification link has expired. Please request a new one",
        TokenFailure.WRONG_TYPE: "Invalid token type for password reset",
    }

    def __init__(self, reason: TokenFailure):
        self.reason = reason
        super().__init__(self.MESSAGES[reason])


class InvalidCredentialsError(AuthError):
    """
    Unknown email, wrong password, or bad MFA code.

    Callers must not be able to tell these cases apart.
    """

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class UserNotFoundError(AuthError):
    """
    No account for an email that was already authenticated.

    Only raised in authenticated contexts (the account was deleted after the
    session token was issued). Never used where it would reveal whether an
    email is registered.
    """

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User not found: {email}")


class SessionExpiredError(AuthError):
    """Bearer token is missing, malformed, tampered with, or past its expiry."""
