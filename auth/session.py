"""Stateless session tokens (signed JWT).

Tokens carry the subject email, issue time and expiry. Nothing is stored
server side and there is no revocation: a token is valid until it expires.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from auth.config import AuthConfig
from auth.exceptions import SessionExpiredError
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_AUDIENCE = "accounts-api"


@dataclass(frozen=True)
class SessionToken:
    """A freshly minted bearer token and when it stops being accepted."""

    access_token: str
    expires_at: datetime


class SessionTokenMinter:
    """Mint and verify HMAC-signed session tokens."""

    def __init__(self, config: AuthConfig):
        self._secret = config.jwt_secret
        self._algorithm = config.jwt_algorithm
        self._issuer = config.jwt_issuer
        self._lifetime = timedelta(minutes=config.session_expiry_minutes)

    def mint(self, email: str) -> SessionToken:
        """Issue a token for `email`. Each call yields an independent token."""
        issued_at = now_utc().replace(microsecond=0)
        expires_at = issued_at + self._lifetime
        payload = {
            "sub": email,
            "iss": self._issuer,
            "aud": _AUDIENCE,
            "iat": issued_at,
            "exp": expires_at,
            "jti": secrets.token_hex(8),
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return SessionToken(access_token=token, expires_at=expires_at)

    def _decode(self, token: str, verify_exp: bool = True) -> dict:
        return jwt.decode(
            token,
            self._secret,
            algorithms=[self._algorithm],
            audience=_AUDIENCE,
            issuer=self._issuer,
            options={"require": ["sub", "exp", "iat"], "verify_exp": verify_exp},
        )

    def expiry_of(self, token: str) -> datetime:
        """
        Expiry of a token minted by this service, for reporting to the client.

        The signature is checked; the expiry itself is not.

        Raises:
            SessionExpiredError: If the token is malformed or tampered with.
        """
        try:
            claims = self._decode(token, verify_exp=False)
        except jwt.PyJWTError as e:
            raise SessionExpiredError(f"Invalid session token: {e}")
        return datetime.fromtimestamp(claims["exp"], tz=timezone.utc)

    def verify(self, token: str) -> str:
        """
        Check signature, issuer, audience and expiry; return the subject email.

        Raises:
            SessionExpiredError: If the token is expired or invalid.
        """
        try:
            claims = self._decode(token)
        except jwt.ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except jwt.PyJWTError as e:
            logger.warning(f"Rejected session token: {e}")
            raise SessionExpiredError("Invalid session token")
        return claims["sub"]
