"""Emailed one-time codes for second-factor login."""

import logging
from datetime import timedelta

from auth.config import AuthConfig
from auth.exceptions import InvalidTokenError
from auth.notifications import MfaCodeEmail, NotificationDispatcher
from auth.single_use import SecretStore, SingleUseSecretIssuer, numeric_code
from auth.types import SecretKind, User

logger = logging.getLogger(__name__)


class OneTimeCodeIssuer:
    """Numeric codes scoped to their owner.

    Codes are short enough to collide between users, so lookups always go by
    (code, user). Issuing a code deletes the user's previous codes.
    """

    def __init__(
        self,
        store: SecretStore,
        config: AuthConfig,
        dispatcher: NotificationDispatcher,
    ):
        self._secrets = SingleUseSecretIssuer(
            store,
            generate=numeric_code(config.mfa_code_length),
            lifetime=timedelta(minutes=config.mfa_code_expiry_minutes),
            owner_scoped=True,
        )
        self._expiry_minutes = config.mfa_code_expiry_minutes
        self._dispatcher = dispatcher

    def issue_code(self, user: User) -> str:
        """Replace the user's code, email the new one, and return it."""
        code = self._secrets.issue(user.id, SecretKind.MFA_CODE).value

        self._dispatcher.dispatch(
            MfaCodeEmail(
                to=user.email,
                first_name=user.first_name,
                code=code,
                expiry_minutes=self._expiry_minutes,
            )
        )
        return code

    def verify_code(self, user: User, code: str) -> bool:
        """
        Consume the user's code if it matches and is live.

        Unknown, expired and already used codes all return False with no
        further detail.
        """
        try:
            secret = self._secrets.check(code, user_id=user.id)
            self._secrets.consume(secret)
        except InvalidTokenError as e:
            logger.warning(f"MFA code rejected for user {user.id}: {e.reason.value}")
            return False

        return True

    def purge_expired(self) -> int:
        return self._secrets.purge_expired()
