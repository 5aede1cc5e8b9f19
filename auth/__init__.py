"""Account registration, verification and authentication."""

from auth.exceptions import (
    AuthError,
    EmailAlreadyExistsError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    SessionExpiredError,
    TokenFailure,
    UserNotFoundError,
)
from auth.types import (
    User,
    UserProfile,
    Role,
    SubscriptionTier,
    SecretKind,
    SingleUseSecret,
    AuthResponse,
    MfaRequiredResponse,
    RegisterResponse,
)
from auth.config import AuthConfig
from auth.database import AuthDatabase, VerificationTokenStore, MfaCodeStore
from auth.single_use import SingleUseSecretIssuer
from auth.tokens import TokenIssuer
from auth.mfa import OneTimeCodeIssuer
from auth.passwords import PasswordHasher, CredentialVerifier
from auth.session import SessionTokenMinter, SessionToken
from auth.notifications import NotificationDispatcher
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.service import AuthService, AuthMessages
from auth.security_middleware import BearerAuthMiddleware
from auth.api import create_auth_router
