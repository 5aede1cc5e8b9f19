"""Single-use, expiring secrets shared by verification tokens and MFA codes.

One issuer enforces the same rules for every kind of secret:

- issuing a secret deletes every earlier secret of that kind for the user,
  in the same transaction as the insert
- a secret is rejected once consumed, and once past its expiry
- consuming stamps `verified_at`; nothing ever clears it

Instances differ only in how the secret value is generated and whether a
lookup needs the owning user (MFA codes are short and not globally unique).
"""

import logging
import secrets
from contextlib import AbstractContextManager
from datetime import datetime, timedelta
from typing import Callable, Protocol

from auth.exceptions import InvalidTokenError, TokenFailure
from auth.types import SecretKind, SingleUseSecret
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecretStore(Protocol):
    """Storage collaborator for one table of single-use secrets."""

    def transaction(self) -> AbstractContextManager[None]: ...

    def delete_for_user(self, user_id: int, kind: SecretKind) -> int: ...

    def insert(self, secret: SingleUseSecret) -> None: ...

    def find(self, value: str, user_id: int | None = None) -> SingleUseSecret | None: ...

    def mark_verified(self, secret: SingleUseSecret, verified_at: datetime) -> bool: ...

    def delete_expired_before(self, cutoff: datetime) -> int: ...


def opaque_token() -> str:
    """URL-safe random token, 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def numeric_code(length: int) -> Callable[[], str]:
    """Generator of zero-padded numeric codes drawn uniformly from the OS CSPRNG."""

    def generate() -> str:
        return f"{secrets.randbelow(10 ** length):0{length}d}"

    return generate


class SingleUseSecretIssuer:
    """Issue, check and consume single-use secrets held in a SecretStore."""

    def __init__(
        self,
        store: SecretStore,
        generate: Callable[[], str],
        lifetime: timedelta,
        owner_scoped: bool,
    ):
        """
        Args:
            store: Table holding this family of secrets
            generate: Produces a fresh secret value
            lifetime: Time from issue to expiry
            owner_scoped: If True, lookups must name the owning user
        """
        self._store = store
        self._generate = generate
        self._lifetime = lifetime
        self._owner_scoped = owner_scoped

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    def issue(self, user_id: int, kind: SecretKind) -> SingleUseSecret:
        """Replace every earlier secret of `kind` for the user with a new one."""
        now = now_utc()
        secret = SingleUseSecret(
            value=self._generate(),
            user_id=user_id,
            kind=kind,
            created_at=now,
            expires_at=now + self._lifetime,
            verified_at=None,
        )

        with self._store.transaction():
            removed = self._store.delete_for_user(user_id, kind)
            self._store.insert(secret)

        logger.info(
            f"Issued {kind.value} secret for user {user_id} "
            f"(expires {secret.expires_at.isoformat()}, replaced {removed})"
        )
        return secret

    def check(self, value: str, user_id: int | None = None) -> SingleUseSecret:
        """
        Return the live secret matching `value` without consuming it.

        Checks run in a fixed order and the first failure wins: existence,
        then already used, then expired. A used secret that has also expired
        reports ALREADY_USED.

        Raises:
            InvalidTokenError: With the reason for the rejection.
            ValueError: If this issuer is owner scoped and no user_id is given.
        """
        if self._owner_scoped and user_id is None:
            raise ValueError("user_id is required to look up owner-scoped secrets")

        secret = self._store.find(value, user_id if self._owner_scoped else None)

        if secret is None:
            logger.warning("Secret lookup failed: not found")
            raise InvalidTokenError(TokenFailure.NOT_FOUND)

        if secret.is_verified:
            logger.warning(f"Rejected already used {secret.kind.value} secret for user {secret.user_id}")
            raise InvalidTokenError(TokenFailure.ALREADY_USED)

        if secret.is_expired(now_utc()):
            logger.warning(
                f"Rejected expired {secret.kind.value} secret for user {secret.user_id} "
                f"(expired at {secret.expires_at.isoformat()})"
            )
            raise InvalidTokenError(TokenFailure.EXPIRED)

        logger.debug(f"{secret.kind.value} secret for user {secret.user_id} is live")
        return secret

    def consume(self, secret: SingleUseSecret) -> SingleUseSecret:
        """
        Stamp `verified_at` on a secret returned by check().

        The stamp only lands on a row that is still unused, so of two requests
        racing on the same secret exactly one gets past here.

        Raises:
            InvalidTokenError: ALREADY_USED if the secret was consumed after check().
        """
        consumed = secret.model_copy(update={"verified_at": now_utc()})
        if not self._store.mark_verified(consumed, consumed.verified_at):
            logger.warning(f"Rejected {secret.kind.value} secret for user {secret.user_id}: consumed concurrently")
            raise InvalidTokenError(TokenFailure.ALREADY_USED)
        logger.info(f"Consumed {secret.kind.value} secret for user {secret.user_id}")
        return consumed

    def purge_expired(self) -> int:
        """Delete every secret whose expiry has passed. Returns count deleted."""
        return self._store.delete_expired_before(now_utc())
