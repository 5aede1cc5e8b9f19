"""Email verification and password reset tokens."""

from datetime import timedelta

from auth.config import AuthConfig
from auth.single_use import SecretStore, SingleUseSecretIssuer, opaque_token
from auth.types import SecretKind, SingleUseSecret

TOKEN_KINDS = (SecretKind.EMAIL_VERIFICATION, SecretKind.PASSWORD_RESET)


class TokenIssuer:
    """Opaque link tokens, looked up by the token string alone.

    At most one live token per (user, kind): issuing a new one deletes the
    previous ones of that kind.
    """

    def __init__(self, store: SecretStore, config: AuthConfig):
        self._secrets = SingleUseSecretIssuer(
            store,
            generate=opaque_token,
            lifetime=timedelta(hours=config.token_validity_hours),
            owner_scoped=False,
        )
        self._validity_hours = config.token_validity_hours

    @property
    def validity_hours(self) -> int:
        return self._validity_hours

    def issue(self, user_id: int, kind: SecretKind) -> str:
        """Create a token for the user and return its string."""
        if kind not in TOKEN_KINDS:
            raise ValueError(f"{kind.value} is not a link token kind")
        return self._secrets.issue(user_id, kind).value

    def validate(self, token: str) -> SingleUseSecret:
        """
        Look up a live token of either kind. Does not consume it.

        Raises:
            InvalidTokenError: NOT_FOUND, ALREADY_USED or EXPIRED.
        """
        return self._secrets.check(token)

    def consume(self, token: SingleUseSecret) -> SingleUseSecret:
        return self._secrets.consume(token)

    def purge_expired(self) -> int:
        return self._secrets.purge_expired()
