"""Password hashing and credential checks (bcrypt)."""

import logging

import bcrypt

from auth.database import AuthDatabase
from auth.exceptions import InvalidCredentialsError
from auth.types import User

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes; longer input is refused instead of truncated
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """One-way bcrypt hashing with a configurable cost factor."""

    def __init__(self, rounds: int = 12):
        self._rounds = rounds
        self._dummy_hash: bytes | None = None

    def hash(self, password: str) -> str:
        """
        Hash a plaintext password.

        Raises:
            ValueError: If the password is longer than bcrypt can represent.
        """
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Constant-time comparison of a plaintext password against a stored hash."""
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
        except ValueError:
            logger.error("Stored password hash is not a valid bcrypt hash")
            return False

    def burn(self, password: str) -> None:
        """
        Spend the same time as a real verify() when there is no hash to check.

        Keeps an unknown-email login indistinguishable from a wrong password by
        response time.
        """
        if self._dummy_hash is None:
            self._dummy_hash = bcrypt.hashpw(b"timing-equalizer", bcrypt.gensalt(rounds=self._rounds))
        bcrypt.checkpw(password.encode("utf-8")[:MAX_PASSWORD_BYTES], self._dummy_hash)


class CredentialVerifier:
    """Check an email and plaintext password against the stored account."""

    def __init__(self, auth_db: AuthDatabase, hasher: PasswordHasher):
        self._auth_db = auth_db
        self._hasher = hasher

    def authenticate(self, email: str, password: str) -> User:
        """
        Return the account if the password matches.

        Disabled and locked accounts are refused with the same error as a
        wrong password.

        Raises:
            InvalidCredentialsError: Unknown email, wrong password, or
                account unusable.
        """
        user = self._auth_db.get_user_by_email(email)

        if user is None:
            self._hasher.burn(password)
            raise InvalidCredentialsError()

        if not self._hasher.verify(password, user.password_hash):
            raise InvalidCredentialsError()

        if not user.can_sign_in:
            logger.warning(f"Login refused for disabled or locked account {user.id}")
            raise InvalidCredentialsError()

        return user
