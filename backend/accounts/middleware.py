"""
Access gate middleware.

For every request:
1. Open a request scope (membership cache + tenant context)
2. Resolve the session to an account (Identity)
3. Resolve the account's membership (privileged, once per request)
4. Set tenant context and RLS parameters for the resolved organization
5. Apply the gate decision for page areas: proceed, redirect or 403
6. Clear all contexts in a finally block

API paths are public to the gate; DRF views enforce authentication and
authorization themselves, but still run with the tenant and RLS context
set up here.
"""
import logging

from django.conf import settings
from django.http import HttpResponseRedirect, JsonResponse

from accounts import rls
from accounts.gate import Deny, Redirect, decide
from accounts.identity import Identity
from accounts.membership import default_resolver
from tenant.context import clear_tenant_context, request_scope, set_tenant_context


logger = logging.getLogger(__name__)


class AccessGateMiddleware:
    """
    Invariants:
    - set_current_organization_id() is only called with an organization
      the resolver returned for this request's account
    - unauthenticated and no-tenant requests run with RLS bypassed; they
      can only reach sign-in, sign-up and "me" endpoints, which read
      accounts and memberships, not tenant rows
    - nothing set here survives the request
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.identity = Identity()
        self.resolver = default_resolver

    def __call__(self, request):
        with request_scope():
            try:
                return self._handle(request)
            finally:
                rls.clear_rls_context()
                clear_tenant_context()

    def _handle(self, request):
        account = self.identity.resolve(request)
        membership = None

        if account:
            membership = self.resolver.cached_membership_of(account.pk)
            set_tenant_context(
                account_id=account.pk,
                organization_id=membership.organization_id if membership else None,
                role=membership.role if membership else None,
            )

        if membership is not None:
            rls.set_current_organization_id(membership.organization_id)
            rls.set_rls_bypass(settings.RLS_BYPASS)
        else:
            rls.set_rls_bypass(True)

        decision = decide(
            account.account_kind if account else None,
            membership is not None,
            request.path,
        )

        if isinstance(decision, Redirect):
            logger.debug(
                "Gate redirect %s -> %s (%s)",
                request.path,
                decision.target,
                decision.reason,
            )
            return HttpResponseRedirect(decision.target)

        if isinstance(decision, Deny):
            logger.warning(
                "Gate denied %s for account %s (%s)",
                request.path,
                account.pk if account else None,
                decision.reason,
                extra={"reason": decision.reason},
            )
            return JsonResponse({"detail": decision.reason}, status=403)

        return self.get_response(request)
