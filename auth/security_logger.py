"""Security event logging for the auth audit trail.

Append-only log to the security_events table. Writing an event never fails
the auth operation that produced it.
"""

import logging
from enum import Enum
from typing import Any

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    USER_REGISTERED = "user_registered"
    REGISTRATION_REJECTED = "registration_rejected"
    EMAIL_VERIFIED = "email_verified"
    TOKEN_REJECTED = "token_rejected"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    LOGIN_UNVERIFIED = "login_unverified"
    MFA_CODE_ISSUED = "mfa_code_issued"
    MFA_VERIFIED = "mfa_verified"
    MFA_FAILED = "mfa_failed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_COMPLETED = "password_reset_completed"


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record an event. Storage failures are logged and swallowed."""
        try:
            self._db.execute_returning(
                """INSERT INTO security_events
                   (event_type, email, user_id, details, created_at)
                   VALUES (%s, %s, %s, %s, %s)
                   RETURNING id""",
                (
                    event.value,
                    email,
                    user_id,
                    Json(details) if details else None,
                    now_utc(),
                ),
            )
        except Exception:
            logger.exception("Failed to record security event %s", event.value)
