"""Pydantic models for the account domain."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class SubscriptionTier(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    PREMIUM = "PREMIUM"


class User(BaseModel):
    """A registered account. `password_hash` is always a bcrypt hash, never plaintext."""

    id: int
    email: str
    password_hash: str
    first_name: str
    last_name: str
    role: Role = Role.USER
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE
    email_verified: bool = False
    account_locked: bool = False
    enabled: bool = True
    mfa_enabled: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def can_sign_in(self) -> bool:
        return self.enabled and not self.account_locked

    def to_profile(self) -> "UserProfile":
        return UserProfile.model_validate(self, from_attributes=True)


class UserProfile(BaseModel):
    """Public view of a user. Never carries the password hash."""

    id: int
    email: str
    first_name: str
    last_name: str
    role: Role
    subscription_tier: SubscriptionTier
    email_verified: bool
    mfa_enabled: bool
    created_at: datetime
    updated_at: datetime


class SecretKind(str, Enum):
    """What a single-use secret is for."""

    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    PASSWORD_RESET = "PASSWORD_RESET"
    MFA_CODE = "MFA_CODE"


class SingleUseSecret(BaseModel):
    """
    A verification token, password reset token, or MFA code.

    `value` is the opaque token string or the numeric code. The secret is
    consumed once `verified_at` is set and can never be used again.
    """

    value: str
    user_id: int
    kind: SecretKind
    created_at: datetime
    expires_at: datetime
    verified_at: datetime | None  # Required - fail closed, no default

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class VerifyMfaRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1)


class RegisterResponse(BaseModel):
    """Acknowledgement of a registration. No session is issued at this stage."""

    email: str
    message: str


class AuthResponse(BaseModel):
    """Successful authentication: a bearer token plus the caller's profile."""

    access_token: str
    token_type: Literal["Bearer"] = "Bearer"
    expires_at: datetime
    user: UserProfile


class MfaRequiredResponse(BaseModel):
    """Password accepted, second factor pending. Carries no token."""

    message: str = "MFA code sent to your email"
    mfa_required: Literal[True] = True


LoginResult = AuthResponse | MfaRequiredResponse
