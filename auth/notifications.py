"""
Account notifications and fire-and-forget delivery.

Each notification kind is its own immutable dataclass with the parameters
its email needs, so a missing parameter fails at construction rather than
at render time. Delivery runs on a background thread pool: dispatch()
returns immediately, and a delivery failure is logged but never reaches the
operation that triggered it.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar

from clients.email_client import EmailGatewayClient

logger = logging.getLogger(__name__)


class NotificationKind(Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    WELCOME = "welcome"
    PASSWORD_CHANGED = "password_changed"
    MFA_CODE = "mfa_code"


@dataclass(frozen=True, kw_only=True)
class Notification:
    """Base class for account emails. `to` is the recipient address."""

    to: str
    first_name: str

    kind: ClassVar[NotificationKind]

    def subject(self, app_name: str) -> str:
        raise NotImplementedError

    def body(self, app_name: str) -> str:
        raise NotImplementedError


@dataclass(frozen=True, kw_only=True)
class VerificationEmail(Notification):
    verification_url: str
    expiry_hours: int

    kind: ClassVar[NotificationKind] = NotificationKind.EMAIL_VERIFICATION

    def subject(self, app_name: str) -> str:
        return "Verify Your Email Address"

    def body(self, app_name: str) -> str:
        return (
            f"Hi {self.first_name},\n\n"
            f"Thanks for signing up for {app_name}. Verify your email to activate your account:\n\n"
            f"{self.verification_url}\n\n"
            f"This link expires in {self.expiry_hours} hours."
        )


@dataclass(frozen=True, kw_only=True)
class PasswordResetEmail(Notification):
    reset_url: str
    expiry_hours: int

    kind: ClassVar[NotificationKind] = NotificationKind.PASSWORD_RESET

    def subject(self, app_name: str) -> str:
        return "Reset Your Password"

    def body(self, app_name: str) -> str:
        return (
            f"Hi {self.first_name},\n\n"
            f"We received a request to reset your {app_name} password. Use this link to choose a new one:\n\n"
            f"{self.reset_url}\n\n"
            f"This link expires in {self.expiry_hours} hours. "
            "If you didn't ask for a reset, you can ignore this email."
        )


@dataclass(frozen=True, kw_only=True)
class WelcomeEmail(Notification):
    kind: ClassVar[NotificationKind] = NotificationKind.WELCOME

    def subject(self, app_name: str) -> str:
        return f"Welcome to {app_name}!"

    def body(self, app_name: str) -> str:
        return (
            f"Hi {self.first_name},\n\n"
            f"Your email is verified and your {app_name} account is ready. You can now log in."
        )


@dataclass(frozen=True, kw_only=True)
class PasswordChangedEmail(Notification):
    changed_at: datetime

    kind: ClassVar[NotificationKind] = NotificationKind.PASSWORD_CHANGED

    def subject(self, app_name: str) -> str:
        return "Password Changed Successfully"

    def body(self, app_name: str) -> str:
        return (
            f"Hi {self.first_name},\n\n"
            f"Your {app_name} password was changed on "
            f"{self.changed_at.strftime('%Y-%m-%d %H:%M UTC')}.\n\n"
            "If this wasn't you, reset your password immediately."
        )


@dataclass(frozen=True, kw_only=True)
class MfaCodeEmail(Notification):
    code: str
    expiry_minutes: int

    kind: ClassVar[NotificationKind] = NotificationKind.MFA_CODE

    def subject(self, app_name: str) -> str:
        return "Your Security Code"

    def body(self, app_name: str) -> str:
        return (
            f"Hi {self.first_name},\n\n"
            f"Your {app_name} security code is {self.code}.\n\n"
            f"It expires in {self.expiry_minutes} minutes."
        )


class NotificationDispatcher:
    """Deliver notifications through the email gateway on background threads."""

    def __init__(self, email_client: EmailGatewayClient, app_name: str, max_workers: int = 4):
        self._email_client = email_client
        self._app_name = app_name
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="notify",
        )
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def dispatch(self, notification: Notification) -> None:
        """Queue delivery and return without waiting for it."""
        future = self._executor.submit(self._deliver, notification)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        logger.debug(f"Queued {notification.kind.value} email for {notification.to}")

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _deliver(self, notification: Notification) -> None:
        try:
            self._email_client.send_email(
                to=notification.to,
                subject=notification.subject(self._app_name),
                body=notification.body(self._app_name),
                sender="auth",
            )
        except Exception:
            logger.exception(
                "Failed to deliver %s email to %s",
                notification.kind.value,
                notification.to,
            )

    def drain(self, timeout: float | None = None) -> None:
        """Block until every queued delivery has finished."""
        with self._lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        """Finish queued deliveries and stop the worker threads."""
        self._executor.shutdown(wait=True)
