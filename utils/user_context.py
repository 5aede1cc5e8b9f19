"""Carry the authenticated subject (user email) through the call stack."""

from contextvars import ContextVar

_current_email: ContextVar[str | None] = ContextVar("current_email", default=None)


def get_current_email() -> str:
    """
    Email of the caller whose bearer token was verified for this request.

    Raises RuntimeError when no subject is set - reaching user-scoped code
    without going through the bearer middleware is a bug.
    """
    email = _current_email.get()
    if email is None:
        raise RuntimeError(
            "No authenticated subject set. This usually means user-scoped "
            "code ran outside of an authenticated request."
        )
    return email


def set_current_email(email: str) -> None:
    """Called by the bearer middleware after verifying the session token."""
    _current_email.set(email)


def clear_current_email() -> None:
    """Must run in a finally block so the subject never leaks across requests."""
    _current_email.set(None)
