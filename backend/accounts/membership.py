"""
Tenant membership resolver.

membership_of(account_id) answers "which organization does this account
belong to, and with what role?" with exactly one query, keyed by user id,
run under rls_bypass(). It is the privileged side channel every other
check builds on:

- it does not go through Membership.objects.visible_to(), which needs a
  resolved membership to filter by;
- on PostgreSQL it does not depend on the RLS policy of the membership
  table, which needs app.current_organization_id, which is only known once
  this function has answered.

Either dependency would make "can I read membership row X" require reading
membership rows first. Keeping the resolver self-contained is what breaks
that cycle.

An account without an active membership resolves to None. That is the
"no tenant" state, not an error.
"""

from dataclasses import dataclass
from typing import Optional

from accounts.models import Membership
from accounts.rls import rls_bypass
from tenant.context import get_cached_membership


@dataclass(frozen=True)
class MembershipInfo:
    """Resolved membership of one account. Plain values, no model instance."""

    membership_id: int
    account_id: int
    organization_id: int
    organization_name: str
    role: str
    is_owner: bool

    @property
    def is_admin(self) -> bool:
        """Owner or admin role."""
        return self.role in (Membership.Role.OWNER, Membership.Role.ADMIN)

    @property
    def is_functional(self) -> bool:
        return self.role in Membership.FUNCTIONAL_ROLES


class MembershipResolver:
    """Stateless; one instance per process is enough."""

    def membership_of(self, account_id: int) -> Optional[MembershipInfo]:
        with rls_bypass():
            row = (
                Membership.objects.filter(
                    user_id=account_id,
                    status=Membership.Status.ACTIVE,
                )
                .values(
                    "id",
                    "organization_id",
                    "organization__name",
                    "organization__owner_id",
                    "role",
                )
                .first()
            )

        if row is None:
            return None

        return MembershipInfo(
            membership_id=row["id"],
            account_id=account_id,
            organization_id=row["organization_id"],
            organization_name=row["organization__name"],
            role=row["role"],
            is_owner=row["organization__owner_id"] == account_id,
        )

    def cached_membership_of(self, account_id: int) -> Optional[MembershipInfo]:
        """
        Same answer as membership_of(), memoized for the current request
        scope only (see tenant.context.request_scope).
        """
        return get_cached_membership(account_id, self.membership_of)


default_resolver = MembershipResolver()


def membership_of(account_id: int) -> Optional[MembershipInfo]:
    return default_resolver.membership_of(account_id)


def cached_membership_of(account_id: int) -> Optional[MembershipInfo]:
    return default_resolver.cached_membership_of(account_id)
