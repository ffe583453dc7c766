"""
auth/errors.py -- Client-facing error taxonomy for authentication and accounts.

Every error carries an HTTP status_code and a stable client message. The API
layer renders all of them through one exception handler as {"message": ...},
so route code raises these instead of building HTTPException payloads.

InvalidToken has two subclasses, MalformedToken and ExpiredToken. They share
the client message on purpose: the subclass name is for logs only, so a
client cannot probe which check failed.

Nothing here is retried internally. Retry policy belongs to the caller.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every expected 4xx outcome of the auth subsystem."""

    status_code: int = 403
    message: str = "Access denied"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    @property
    def reason(self) -> str:
        """Internal reason for logs (the class name, e.g. 'ExpiredToken')."""
        return type(self).__name__


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class MissingCredentials(AuthError):
    status_code = 401
    message = "Access token required"


class InvalidToken(AuthError):
    status_code = 403
    message = "Invalid or expired token"


class MalformedToken(InvalidToken):
    """Bad structure, bad signature, or claims that do not decode."""


class ExpiredToken(InvalidToken):
    """Signature checks out but now >= expires_at."""


class Revoked(AuthError):
    message = "Token has been invalidated"


class Deactivated(AuthError):
    message = "User account is deactivated"


class PendingApproval(AuthError):
    message = "Supplier account pending approval"


class Forbidden(AuthError):
    message = "Insufficient permissions"


class CredentialMismatch(AuthError):
    status_code = 401
    message = "Invalid email or password"


class RateLimited(AuthError):
    """Fixed-window limit exceeded for a client on one route class.

    limit is the window's request budget. reset_at is the epoch second at
    which the window rolls over; retry_after is the whole number of seconds
    from now until then.
    """

    status_code = 429
    message = "Too many requests, please try again later"

    def __init__(
        self,
        message: str | None = None,
        *,
        limit: int = 0,
        reset_at: float = 0.0,
        retry_after: int = 0,
    ) -> None:
        super().__init__(message)
        self.limit = limit
        self.reset_at = reset_at
        self.retry_after = retry_after


# ---------------------------------------------------------------------------
# Account management
# ---------------------------------------------------------------------------


class EmailAlreadyRegistered(AuthError):
    status_code = 400
    message = "User already exists with this email"


class UserNotFound(AuthError):
    status_code = 404
    message = "User not found"


class InvalidAccountAction(AuthError):
    status_code = 400
    message = "Action not allowed for this account"
