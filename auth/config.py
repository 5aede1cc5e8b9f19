"""Authentication configuration."""

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    Built once at startup and handed to every auth component. Nothing in the
    auth package reads the environment at call time.
    """

    # Verification / password reset tokens
    token_validity_hours: int = Field(
        default=24,
        description="How long email verification and password reset links remain valid",
        ge=1,
        le=168,
    )

    # One-time MFA codes
    mfa_code_expiry_minutes: int = Field(
        default=10,
        description="How long an emailed MFA code remains valid",
        ge=1,
        le=60,
    )
    mfa_code_length: int = Field(
        default=6,
        description="Number of digits in an MFA code",
        ge=4,
        le=10,
    )

    # Session tokens (JWT)
    jwt_secret: str = Field(
        ...,
        description="HMAC key for signing session tokens",
        min_length=32,
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_issuer: str = Field(default="accounts-backend", description="JWT iss claim")
    session_expiry_minutes: int = Field(
        default=1440,  # 24 hours
        description="Session token lifetime in minutes",
        ge=5,
        le=43200,
    )

    # Password hashing
    bcrypt_rounds: int = Field(default=12, description="bcrypt cost factor", ge=4, le=16)

    # Links embedded in emails
    verification_url: str = Field(
        default="http://localhost:8080/verify-email",
        description="Base URL for email verification links",
    )
    reset_password_url: str = Field(
        default="http://localhost:8080/reset-password",
        description="Base URL for password reset links",
    )

    # Application
    app_name: str = Field(default="Accounts", description="Application name for emails")
    notification_workers: int = Field(
        default=4,
        description="Background threads delivering emails",
        ge=1,
        le=32,
    )
