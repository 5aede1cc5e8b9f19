"""Database operations for authentication.

Tables: users, verification_tokens, mfa_codes (see auth/schema.sql).
Email matching is exact (case-sensitive); uniqueness is enforced by the
users.email constraint.
"""

import logging
from datetime import datetime
from typing import Any, Dict

import psycopg2.errors

from clients.postgres_client import PostgresClient
from auth.exceptions import EmailAlreadyExistsError
from auth.types import SecretKind, SingleUseSecret, User
from utils.timezone import now_utc, to_utc

logger = logging.getLogger(__name__)

_USER_COLUMNS = """id, email, password_hash, first_name, last_name, role,
    subscription_tier, email_verified, account_locked, enabled, mfa_enabled,
    created_at, updated_at"""


def _row_to_user(row: Dict[str, Any]) -> User:
    return User(
        **{
            **row,
            "created_at": to_utc(row["created_at"]),
            "updated_at": to_utc(row["updated_at"]),
        }
    )


def _row_to_secret(row: Dict[str, Any], kind: SecretKind) -> SingleUseSecret:
    return SingleUseSecret(
        value=row["value"],
        user_id=row["user_id"],
        kind=kind,
        created_at=to_utc(row["created_at"]),
        expires_at=to_utc(row["expires_at"]),
        verified_at=to_utc(row["verified_at"]) if row["verified_at"] else None,
    )


class AuthDatabase:
    """User account storage."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def transaction(self):
        """One atomic unit of work spanning every auth table."""
        return self._db.transaction()

    def get_user_by_email(self, email: str) -> User | None:
        """Find user by exact email."""
        row = self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s",
            (email,),
        )
        return _row_to_user(row) if row else None

    def get_user_by_id(self, user_id: int) -> User | None:
        row = self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            (user_id,),
        )
        return _row_to_user(row) if row else None

    def email_exists(self, email: str) -> bool:
        return bool(
            self._db.execute_scalar(
                "SELECT EXISTS (SELECT 1 FROM users WHERE email = %s)",
                (email,),
            )
        )

    def create_user(
        self,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
    ) -> User:
        """
        Insert a new unverified USER/FREE account.

        Raises:
            EmailAlreadyExistsError: If the email is taken (unique constraint).
        """
        now = now_utc()
        try:
            rows = self._db.execute_returning(
                f"""INSERT INTO users (email, password_hash, first_name, last_name,
                       role, subscription_tier, email_verified, account_locked,
                       enabled, mfa_enabled, created_at, updated_at)
                   VALUES (%s, %s, %s, %s, 'USER', 'FREE', false, false, true, false, %s, %s)
                   RETURNING {_USER_COLUMNS}""",
                (email, password_hash, first_name, last_name, now, now),
            )
        except psycopg2.errors.UniqueViolation:
            logger.warning(f"Unique constraint rejected duplicate email: {email}")
            raise EmailAlreadyExistsError(email)
        return _row_to_user(rows[0])

    def _update(self, user_id: int, assignments: str, params: tuple) -> User | None:
        rows = self._db.execute_returning(
            f"""UPDATE users SET {assignments}, updated_at = %s
                WHERE id = %s
                RETURNING {_USER_COLUMNS}""",
            (*params, now_utc(), user_id),
        )
        return _row_to_user(rows[0]) if rows else None

    def mark_email_verified(self, user_id: int) -> User | None:
        return self._update(user_id, "email_verified = true", ())

    def update_password_hash(self, user_id: int, password_hash: str) -> User | None:
        return self._update(user_id, "password_hash = %s", (password_hash,))

    def set_mfa_enabled(self, user_id: int, enabled: bool) -> User | None:
        return self._update(user_id, "mfa_enabled = %s", (enabled,))

    def delete_user(self, user_id: int) -> bool:
        """Delete a user; tokens and codes cascade. True if a row was deleted."""
        rows = self._db.execute_returning(
            "DELETE FROM users WHERE id = %s RETURNING id",
            (user_id,),
        )
        return len(rows) > 0


class VerificationTokenStore:
    """Email verification and password reset tokens. Token strings are unique."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def transaction(self):
        return self._db.transaction()

    def delete_for_user(self, user_id: int, kind: SecretKind) -> int:
        rows = self._db.execute_returning(
            "DELETE FROM verification_tokens WHERE user_id = %s AND type = %s RETURNING id",
            (user_id, kind.value),
        )
        return len(rows)

    def insert(self, secret: SingleUseSecret) -> None:
        self._db.execute_returning(
            """INSERT INTO verification_tokens
                   (token, user_id, type, created_at, expires_at, verified_at)
               VALUES (%s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                secret.value,
                secret.user_id,
                secret.kind.value,
                secret.created_at,
                secret.expires_at,
                secret.verified_at,
            ),
        )

    def find(self, value: str, user_id: int | None = None) -> SingleUseSecret | None:
        row = self._db.execute_single(
            """SELECT token AS value, user_id, type, created_at, expires_at, verified_at
               FROM verification_tokens
               WHERE token = %s""",
            (value,),
        )
        if row is None:
            return None
        return _row_to_secret(row, SecretKind(row["type"]))

    def find_latest(self, user_id: int, kind: SecretKind) -> SingleUseSecret | None:
        """Most recently issued token of `kind` for the user."""
        row = self._db.execute_single(
            """SELECT token AS value, user_id, type, created_at, expires_at, verified_at
               FROM verification_tokens
               WHERE user_id = %s AND type = %s
               ORDER BY created_at DESC
               LIMIT 1""",
            (user_id, kind.value),
        )
        return _row_to_secret(row, kind) if row else None

    def mark_verified(self, secret: SingleUseSecret, verified_at: datetime) -> bool:
        """Stamp the token unless another request already did. True if this call stamped it."""
        rows = self._db.execute_returning(
            """UPDATE verification_tokens SET verified_at = %s
               WHERE token = %s AND verified_at IS NULL
               RETURNING id""",
            (verified_at, secret.value),
        )
        return bool(rows)

    def delete_expired_before(self, cutoff: datetime) -> int:
        rows = self._db.execute_returning(
            "DELETE FROM verification_tokens WHERE expires_at < %s RETURNING id",
            (cutoff,),
        )
        return len(rows)


class MfaCodeStore:
    """One-time MFA codes. Looked up by (code, user); codes repeat across users."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def transaction(self):
        return self._db.transaction()

    def delete_for_user(self, user_id: int, kind: SecretKind = SecretKind.MFA_CODE) -> int:
        rows = self._db.execute_returning(
            "DELETE FROM mfa_codes WHERE user_id = %s RETURNING id",
            (user_id,),
        )
        return len(rows)

    def insert(self, secret: SingleUseSecret) -> None:
        self._db.execute_returning(
            """INSERT INTO mfa_codes (code, user_id, created_at, expires_at, verified_at)
               VALUES (%s, %s, %s, %s, %s)
               RETURNING id""",
            (
                secret.value,
                secret.user_id,
                secret.created_at,
                secret.expires_at,
                secret.verified_at,
            ),
        )

    def find(self, value: str, user_id: int | None = None) -> SingleUseSecret | None:
        row = self._db.execute_single(
            """SELECT code AS value, user_id, created_at, expires_at, verified_at
               FROM mfa_codes
               WHERE code = %s AND user_id = %s
               ORDER BY created_at DESC
               LIMIT 1""",
            (value, user_id),
        )
        return _row_to_secret(row, SecretKind.MFA_CODE) if row else None

    def mark_verified(self, secret: SingleUseSecret, verified_at: datetime) -> bool:
        rows = self._db.execute_returning(
            """UPDATE mfa_codes SET verified_at = %s
               WHERE code = %s AND user_id = %s AND verified_at IS NULL
               RETURNING id""",
            (verified_at, secret.value, secret.user_id),
        )
        return bool(rows)

    def delete_expired_before(self, cutoff: datetime) -> int:
        rows = self._db.execute_returning(
            "DELETE FROM mfa_codes WHERE expires_at < %s RETURNING id",
            (cutoff,),
        )
        return len(rows)
