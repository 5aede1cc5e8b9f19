"""Authentication service - orchestrates the account lifecycle.

Per account: unverified -> verified -> (MFA pending) -> authenticated, with
the forgot/reset password flow running alongside without touching the
verification state.

Each public operation runs as one database transaction. Emails are queued
only after the transaction commits, and a failed delivery never affects the
result of the operation.
"""

import logging

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import (
    EmailAlreadyExistsError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    TokenFailure,
    UserNotFoundError,
)
from auth.mfa import OneTimeCodeIssuer
from auth.notifications import (
    NotificationDispatcher,
    PasswordChangedEmail,
    PasswordResetEmail,
    VerificationEmail,
    WelcomeEmail,
)
from auth.passwords import CredentialVerifier, PasswordHasher
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import SessionTokenMinter
from auth.tokens import TokenIssuer
from auth.types import (
    AuthResponse,
    LoginResult,
    MfaRequiredResponse,
    RegisterResponse,
    SecretKind,
    User,
    UserProfile,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class AuthMessages:
    """User-facing acknowledgement strings."""

    REGISTERED = "Registration successful. Please check your email to verify your account."
    EMAIL_VERIFIED = "Email verified successfully! You can now log in."
    # Identical whether or not the account exists
    PASSWORD_RESET_SENT = "If an account exists for this email, a password reset link has been sent."
    PASSWORD_RESET_DONE = "Password has been reset successfully. You can now log in with your new password."
    MFA_CODE_INVALID = "Invalid or expired MFA code"


class AuthService:
    """Orchestrates registration, verification, login, MFA and password reset."""

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        token_issuer: TokenIssuer,
        code_issuer: OneTimeCodeIssuer,
        credentials: CredentialVerifier,
        hasher: PasswordHasher,
        session_minter: SessionTokenMinter,
        dispatcher: NotificationDispatcher,
        security_logger: SecurityLogger,
    ):
        self._config = config
        self._auth_db = auth_db
        self._token_issuer = token_issuer
        self._code_issuer = code_issuer
        self._credentials = credentials
        self._hasher = hasher
        self._session_minter = session_minter
        self._dispatcher = dispatcher
        self._security_logger = security_logger

    def _link(self, base_url: str, token: str) -> str:
        return f"{base_url}?token={token}"

    def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> RegisterResponse:
        """Create an unverified account and email a verification link.

        Does not log the user in.

        Raises:
            EmailAlreadyExistsError: If the email is already registered.
            ValueError: If the password is too long to hash.
        """
        logger.info(f"Attempting to register user with email: {email}")

        # Hash outside the transaction; bcrypt is deliberately slow
        password_hash = self._hasher.hash(password)

        try:
            with self._auth_db.transaction():
                # The unique constraint on users.email backs this check up under races
                if self._auth_db.email_exists(email):
                    raise EmailAlreadyExistsError(email)

                user = self._auth_db.create_user(email, password_hash, first_name, last_name)
                token = self._token_issuer.issue(user.id, SecretKind.EMAIL_VERIFICATION)
        except EmailAlreadyExistsError:
            logger.warning(f"Registration failed - email already exists: {email}")
            self._security_logger.log(SecurityEvent.REGISTRATION_REJECTED, email=email)
            raise

        self._security_logger.log(SecurityEvent.USER_REGISTERED, email=user.email, user_id=user.id)
        logger.info(f"User registered successfully: {user.email}")

        self._dispatcher.dispatch(
            VerificationEmail(
                to=user.email,
                first_name=user.first_name,
                verification_url=self._link(self._config.verification_url, token),
                expiry_hours=self._token_issuer.validity_hours,
            )
        )

        return RegisterResponse(email=user.email, message=AuthMessages.REGISTERED)

    def confirm_email(self, token: str) -> str:
        """Mark the token owner's email verified and consume the token.

        Raises:
            InvalidTokenError: If the token is unknown, used, or expired.
        """
        logger.info("Attempting to verify email with token")

        try:
            with self._auth_db.transaction():
                secret = self._token_issuer.validate(token)
                self._token_issuer.consume(secret)
                user = self._auth_db.mark_email_verified(secret.user_id)
                if user is None:
                    raise InvalidTokenError(TokenFailure.NOT_FOUND)
        except InvalidTokenError as e:
            self._security_logger.log(
                SecurityEvent.TOKEN_REJECTED,
                details={"flow": "verify_email", "reason": e.reason.value},
            )
            raise

        self._security_logger.log(SecurityEvent.EMAIL_VERIFIED, email=user.email, user_id=user.id)
        logger.info(f"Email verified successfully for user: {user.email}")

        self._dispatcher.dispatch(WelcomeEmail(to=user.email, first_name=user.first_name))

        return AuthMessages.EMAIL_VERIFIED

    def login(self, email: str, password: str) -> LoginResult:
        """Check credentials and either issue a session token or start MFA.

        Unknown emails look exactly like bad passwords, but an unverified email
        is reported as such. With MFA enabled this call never returns a token;
        the caller must follow up with verify_mfa().

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
            EmailNotVerifiedError: Password not checked; email still unverified.
        """
        logger.debug(f"Login attempt for email: {email}")

        user = self._auth_db.get_user_by_email(email)

        if user is None:
            self._hasher.burn(password)
            self._login_failed(email, None, "unknown_email")
            raise InvalidCredentialsError()

        if not user.email_verified:
            logger.warning(f"Login failed - email not verified: {email}")
            self._security_logger.log(SecurityEvent.LOGIN_UNVERIFIED, email=email, user_id=user.id)
            raise EmailNotVerifiedError()

        try:
            user = self._credentials.authenticate(email, password)
        except InvalidCredentialsError:
            self._login_failed(email, user.id, "bad_password")
            raise

        if user.mfa_enabled:
            self._code_issuer.issue_code(user)
            self._security_logger.log(SecurityEvent.MFA_CODE_ISSUED, email=email, user_id=user.id)
            logger.info(f"MFA code sent for login: {email}")
            return MfaRequiredResponse()

        return self._authenticated(user)

    def _login_failed(self, email: str, user_id: int | None, reason: str) -> None:
        logger.warning(f"Login failed for email: {email}")
        self._security_logger.log(
            SecurityEvent.LOGIN_FAILED,
            email=email,
            user_id=user_id,
            details={"reason": reason},
        )

    def verify_mfa(self, email: str, code: str) -> AuthResponse:
        """Complete an MFA login with the emailed code.

        Raises:
            InvalidCredentialsError: Unknown email, or a code that is wrong,
                expired, or already used.
        """
        user = self._auth_db.get_user_by_email(email)
        if user is None:
            logger.warning(f"MFA verification for unknown email: {email}")
            raise InvalidCredentialsError()

        if not user.can_sign_in:
            logger.warning(f"MFA verification refused for disabled or locked account {user.id}")
            self._security_logger.log(SecurityEvent.MFA_FAILED, email=email, user_id=user.id)
            raise InvalidCredentialsError()

        with self._auth_db.transaction():
            accepted = self._code_issuer.verify_code(user, code)

        if not accepted:
            self._security_logger.log(SecurityEvent.MFA_FAILED, email=email, user_id=user.id)
            raise InvalidCredentialsError(AuthMessages.MFA_CODE_INVALID)

        self._security_logger.log(SecurityEvent.MFA_VERIFIED, email=email, user_id=user.id)
        return self._authenticated(user)

    def _authenticated(self, user: User) -> AuthResponse:
        session = self._session_minter.mint(user.email)

        self._security_logger.log(SecurityEvent.LOGIN_SUCCEEDED, email=user.email, user_id=user.id)
        logger.info(f"User authenticated successfully: {user.email}")

        return AuthResponse(
            access_token=session.access_token,
            expires_at=self._session_minter.expiry_of(session.access_token),
            user=user.to_profile(),
        )

    def forgot_password(self, email: str) -> str:
        """Email a reset link if the account exists.

        The answer is the same either way, so this cannot be used to find out
        whether an email is registered.
        """
        logger.info(f"Password reset requested for: {email}")

        user = self._auth_db.get_user_by_email(email)
        if user is None:
            logger.warning(f"Password reset request for non-existing email: {email}")
            return AuthMessages.PASSWORD_RESET_SENT

        token = self._token_issuer.issue(user.id, SecretKind.PASSWORD_RESET)

        self._security_logger.log(SecurityEvent.PASSWORD_RESET_REQUESTED, email=email, user_id=user.id)

        self._dispatcher.dispatch(
            PasswordResetEmail(
                to=user.email,
                first_name=user.first_name,
                reset_url=self._link(self._config.reset_password_url, token),
                expiry_hours=self._token_issuer.validity_hours,
            )
        )
        logger.info(f"Password reset email queued for: {email}")

        return AuthMessages.PASSWORD_RESET_SENT

    def reset_password(self, token: str, new_password: str) -> str:
        """Set a new password using a PASSWORD_RESET token. Does not log in.

        Raises:
            InvalidTokenError: Unknown, used, expired, or not a reset token.
            ValueError: If the new password is too long to hash.
        """
        logger.info("Attempting password reset with token")

        try:
            with self._auth_db.transaction():
                secret = self._token_issuer.validate(token)

                if secret.kind is not SecretKind.PASSWORD_RESET:
                    raise InvalidTokenError(TokenFailure.WRONG_TYPE)

                password_hash = self._hasher.hash(new_password)
                self._token_issuer.consume(secret)
                user = self._auth_db.update_password_hash(secret.user_id, password_hash)
                if user is None:
                    raise InvalidTokenError(TokenFailure.NOT_FOUND)
        except InvalidTokenError as e:
            self._security_logger.log(
                SecurityEvent.TOKEN_REJECTED,
                details={"flow": "reset_password", "reason": e.reason.value},
            )
            raise

        self._security_logger.log(SecurityEvent.PASSWORD_RESET_COMPLETED, email=user.email, user_id=user.id)
        logger.info(f"Password reset successfully for user: {user.email}")

        self._dispatcher.dispatch(
            PasswordChangedEmail(
                to=user.email,
                first_name=user.first_name,
                changed_at=now_utc(),
            )
        )

        return AuthMessages.PASSWORD_RESET_DONE

    def get_current_user(self, email: str) -> UserProfile:
        """Profile of an already authenticated caller.

        Raises:
            UserNotFoundError: If the account was deleted after the token was issued.
        """
        user = self._auth_db.get_user_by_email(email)
        if user is None:
            logger.error(f"User not found: {email}")
            raise UserNotFoundError(email)
        return user.to_profile()

    def purge_expired_secrets(self) -> dict[str, int]:
        """Delete expired verification tokens and MFA codes. For a scheduled job."""
        counts = {
            "verification_tokens": self._token_issuer.purge_expired(),
            "mfa_codes": self._code_issuer.purge_expired(),
        }
        logger.info(
            f"Purged {counts['verification_tokens']} expired tokens "
            f"and {counts['mfa_codes']} expired MFA codes"
        )
        return counts
