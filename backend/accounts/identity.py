"""
Identity resolution: raw session -> account.

A session is whatever the request carries: an ``Authorization: Bearer``
header (API calls) or the access-token cookie (page requests). Both hold a
simplejwt access token.

resolve() never raises for a bad session. Missing, malformed, expired or
revoked tokens, and tokens naming an unknown or deactivated account, all
come back as the UNAUTHENTICATED sentinel, which every caller must branch
on.
"""

import logging
from typing import Optional, Union

from django.conf import settings
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.tokens import RefreshToken

from accounts.errors import UNAUTHENTICATED, Unauthenticated
from accounts.models import User


logger = logging.getLogger(__name__)


class Identity:
    """
    Resolves requests to accounts.

    Constructed once by the access gate middleware and handed to whatever
    needs it; holds no per-request state.
    """

    def __init__(self, jwt_auth: Optional[JWTAuthentication] = None):
        self.jwt_auth = jwt_auth or JWTAuthentication()

    def resolve(self, request) -> Union[User, Unauthenticated]:
        try:
            raw_token = self._raw_token(request)
            if raw_token is None:
                return UNAUTHENTICATED
            validated = self.jwt_auth.get_validated_token(raw_token)
            user = self.jwt_auth.get_user(validated)
        except AuthenticationFailed as exc:
            logger.debug("Session rejected: %s", exc.detail)
            return UNAUTHENTICATED

        if not user.is_active:
            return UNAUTHENTICATED
        return user

    def _raw_token(self, request) -> Optional[bytes]:
        header = self.jwt_auth.get_header(request)
        if header is not None:
            raw = self.jwt_auth.get_raw_token(header)
            if raw is not None:
                return raw

        cookie = request.COOKIES.get(settings.AUTH_COOKIE_NAME)
        if cookie:
            return cookie.encode()
        return None


def resolve(request) -> Union[User, Unauthenticated]:
    """Resolve a request's session to an account, or UNAUTHENTICATED."""
    return Identity().resolve(request)


def issue_tokens(user: User) -> dict:
    """
    Issue a refresh/access pair for a signed-in account.

    The account kind travels as a claim for clients that want to pick a
    home area without another round trip; the server always re-reads it
    from the account row.
    """
    refresh = RefreshToken.for_user(user)
    refresh["account_kind"] = user.account_kind
    return {
        "refresh": str(refresh),
        "access": str(refresh.access_token),
        "account_kind": user.account_kind,
    }
