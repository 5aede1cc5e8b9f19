"""Shared test fixtures for the accounts test suite.

Service-level tests run against in-memory implementations of the storage
collaborators defined here. The SQL storage classes have their own tests
against a mocked PostgresClient.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from unittest.mock import Mock

import pytest

from auth.config import AuthConfig
from auth.exceptions import EmailAlreadyExistsError
from auth.mfa import OneTimeCodeIssuer
from auth.notifications import NotificationDispatcher
from auth.passwords import CredentialVerifier, PasswordHasher
from auth.security_logger import SecurityLogger
from auth.service import AuthService
from auth.session import SessionTokenMinter
from auth.tokens import TokenIssuer
from auth.types import SecretKind, SingleUseSecret, User
from utils.timezone import now_utc
from utils.user_context import clear_current_email


TEST_JWT_SECRET = "test-jwt-secret-that-is-long-enough-for-hs256"


# =============================================================================
# IN-MEMORY STORAGE
# =============================================================================


class InMemoryAuthDatabase:
    """Dict-backed stand-in for AuthDatabase with the same method contract."""

    def __init__(self):
        self.users: dict[int, User] = {}
        self._next_id = 1
        self._lock = threading.RLock()
        self.transactions = 0

    @contextmanager
    def transaction(self):
        with self._lock:
            self.transactions += 1
            yield

    def get_user_by_email(self, email: str) -> User | None:
        return next((u for u in self.users.values() if u.email == email), None)

    def get_user_by_id(self, user_id: int) -> User | None:
        return self.users.get(user_id)

    def email_exists(self, email: str) -> bool:
        return self.get_user_by_email(email) is not None

    def create_user(self, email, password_hash, first_name, last_name) -> User:
        with self._lock:
            if self.email_exists(email):
                raise EmailAlreadyExistsError(email)
            now = now_utc()
            user = User(
                id=self._next_id,
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                created_at=now,
                updated_at=now,
            )
            self.users[user.id] = user
            self._next_id += 1
            return user

    def _update(self, user_id: int, **fields) -> User | None:
        user = self.users.get(user_id)
        if user is None:
            return None
        updated = user.model_copy(update={**fields, "updated_at": now_utc()})
        self.users[user_id] = updated
        return updated

    def mark_email_verified(self, user_id: int) -> User | None:
        return self._update(user_id, email_verified=True)

    def update_password_hash(self, user_id: int, password_hash: str) -> User | None:
        return self._update(user_id, password_hash=password_hash)

    def set_mfa_enabled(self, user_id: int, enabled: bool) -> User | None:
        return self._update(user_id, mfa_enabled=enabled)

    def delete_user(self, user_id: int) -> bool:
        return self.users.pop(user_id, None) is not None


class InMemorySecretStore:
    """List-backed SecretStore. `owner_scoped` mirrors MfaCodeStore lookups."""

    def __init__(self, owner_scoped: bool = False):
        self.rows: list[SingleUseSecret] = []
        self._owner_scoped = owner_scoped
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self):
        with self._lock:
            yield

    def delete_for_user(self, user_id: int, kind: SecretKind) -> int:
        before = len(self.rows)
        self.rows = [
            r for r in self.rows
            if not (r.user_id == user_id and (self._owner_scoped or r.kind == kind))
        ]
        return before - len(self.rows)

    def insert(self, secret: SingleUseSecret) -> None:
        self.rows.append(secret)

    def find(self, value: str, user_id: int | None = None) -> SingleUseSecret | None:
        matches = [
            r for r in self.rows
            if r.value == value and (user_id is None or r.user_id == user_id)
        ]
        return matches[-1] if matches else None

    def mark_verified(self, secret: SingleUseSecret, verified_at: datetime) -> bool:
        stamped = False
        rows = []
        for r in self.rows:
            if r.value == secret.value and r.user_id == secret.user_id and r.verified_at is None:
                r = r.model_copy(update={"verified_at": verified_at})
                stamped = True
            rows.append(r)
        self.rows = rows
        return stamped

    def delete_expired_before(self, cutoff: datetime) -> int:
        before = len(self.rows)
        self.rows = [r for r in self.rows if r.expires_at >= cutoff]
        return before - len(self.rows)

    def latest(self, user_id: int, kind: SecretKind) -> SingleUseSecret | None:
        """Test helper: newest row for (user, kind)."""
        matches = [r for r in self.rows if r.user_id == user_id and r.kind == kind]
        return matches[-1] if matches else None

    def backdate(self, value: str, expires_at: datetime) -> None:
        """Test helper: move a secret's expiry."""
        self.rows = [
            r.model_copy(update={"expires_at": expires_at}) if r.value == value else r
            for r in self.rows
        ]


# =============================================================================
# CONTEXT
# =============================================================================


@pytest.fixture(autouse=True)
def reset_subject_context():
    """Ensure clean subject context before and after each test."""
    clear_current_email()
    yield
    clear_current_email()


# =============================================================================
# AUTH FIXTURES
# =============================================================================


@pytest.fixture
def config():
    """Cheap bcrypt and predictable URLs for tests."""
    return AuthConfig(
        jwt_secret=TEST_JWT_SECRET,
        bcrypt_rounds=4,
        token_validity_hours=24,
        mfa_code_expiry_minutes=10,
        session_expiry_minutes=60,
        verification_url="https://app.example.com/verify-email",
        reset_password_url="https://app.example.com/reset-password",
        app_name="Accounts Test",
    )


@pytest.fixture
def auth_db():
    return InMemoryAuthDatabase()


@pytest.fixture
def token_store():
    return InMemorySecretStore(owner_scoped=False)


@pytest.fixture
def code_store():
    return InMemorySecretStore(owner_scoped=True)


@pytest.fixture
def dispatcher():
    """Mock dispatcher - no emails leave the test."""
    return Mock(spec=NotificationDispatcher)


@pytest.fixture
def security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def hasher(config):
    return PasswordHasher(rounds=config.bcrypt_rounds)


@pytest.fixture
def session_minter(config):
    return SessionTokenMinter(config)


@pytest.fixture
def token_issuer(token_store, config):
    return TokenIssuer(token_store, config)


@pytest.fixture
def code_issuer(code_store, config, dispatcher):
    return OneTimeCodeIssuer(code_store, config, dispatcher)


@pytest.fixture
def auth_service(
    config,
    auth_db,
    token_issuer,
    code_issuer,
    hasher,
    session_minter,
    dispatcher,
    security_logger,
):
    """AuthService wired to in-memory storage and a mocked dispatcher."""
    return AuthService(
        config=config,
        auth_db=auth_db,
        token_issuer=token_issuer,
        code_issuer=code_issuer,
        credentials=CredentialVerifier(auth_db, hasher),
        hasher=hasher,
        session_minter=session_minter,
        dispatcher=dispatcher,
        security_logger=security_logger,
    )


@pytest.fixture
def make_user(auth_db, hasher):
    """Insert a user directly into storage."""

    def _make(
        email: str = "user@example.com",
        password: str = "pw12345",
        verified: bool = True,
        mfa: bool = False,
        **fields,
    ) -> User:
        user = auth_db.create_user(email, hasher.hash(password), "Ada", "Lovelace")
        return auth_db._update(user.id, email_verified=verified, mfa_enabled=mfa, **fields)

    return _make
