"""
Error taxonomy for identity and authorization.

- Unauthenticated: no valid identity. Returned (never raised) by
  identity resolution as the UNAUTHENTICATED sentinel.
- Unauthorized: valid identity, wrong role or organization. Raised by
  authz.require() as a DRF PermissionDenied so views answer 403.
- ImmutableFieldError: an attempt to change a provision-time attribute
  such as User.account_kind.

"No membership" is deliberately absent: the resolver returns None for it.
"""

from rest_framework import status
from rest_framework.exceptions import APIException, PermissionDenied


class ImmutableFieldError(Exception):
    """Raised when code tries to change a field that is fixed at creation."""
    pass


class Unauthenticated:
    """Sentinel type for "no valid identity". Falsy, so callers can branch."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNAUTHENTICATED"

    @property
    def is_authenticated(self) -> bool:
        return False


UNAUTHENTICATED = Unauthenticated()


class Unauthorized(PermissionDenied):
    """A Deny decision surfaced to the API layer."""

    default_code = "unauthorized"

    def __init__(self, reason: str, detail=None):
        self.reason = reason
        super().__init__(detail or f"Permission denied: {reason}", code=reason)


class AccountKindMismatch(APIException):
    """
    Credentials presented at the wrong sign-in surface.

    Carries the entry point the account should use instead; no tokens are
    issued when this is raised.
    """

    status_code = status.HTTP_403_FORBIDDEN
    default_code = "account_kind_mismatch"

    def __init__(self, redirect: str):
        self.redirect = redirect
        super().__init__(
            {"detail": "account_kind_mismatch", "redirect": redirect},
            code="account_kind_mismatch",
        )
