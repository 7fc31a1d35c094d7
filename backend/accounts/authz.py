# accounts/authz.py
"""
Authorization policy evaluator.

authorize(account, resource, action) -> Allow | Deny(reason)

Rules, first match wins:
1. No account                           -> Deny("unauthenticated")
2. No active membership                 -> Deny("no_tenant")
3. Resource in another organization     -> Deny("cross_organization")
4. OWNER                                -> Allow
5. ADMIN                                -> Allow, except deleting the
                                           organization and modifying the
                                           owner's membership or account
6. Functional roles                     -> view what they are assigned to,
                                           update their own tasks, nothing else

Evaluation reads the membership resolver and attributes of the resource.
For projects and payments it makes one lookup on the assignment table,
never on the table of the resource being checked, so no check can depend
on itself.

View-side helpers:
- ActorContext: the account plus its resolved membership
- resolve_actor: build it from a request (once per view)
- require: raise Unauthorized on Deny
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from django.apps import apps
from rest_framework.exceptions import NotAuthenticated

from accounts.errors import Unauthorized
from accounts.membership import MembershipInfo, MembershipResolver, default_resolver
from accounts.models import Membership
from accounts.resources import Kind, describe


logger = logging.getLogger(__name__)


VIEW = "view"
CREATE = "create"
UPDATE = "update"
DELETE = "delete"
ACTIONS = frozenset({VIEW, CREATE, UPDATE, DELETE})


@dataclass(frozen=True)
class Allow:
    allowed = True

    def __bool__(self):
        return True


@dataclass(frozen=True)
class Deny:
    reason: str
    allowed = False

    def __bool__(self):
        return False


ALLOW = Allow()

Decision = Union[Allow, Deny]


def authorize(
    account,
    resource,
    action: str,
    *,
    resolver: MembershipResolver = default_resolver,
) -> Decision:
    if action not in ACTIONS:
        raise ValueError(f"Unknown action: {action}")

    if account is None or not getattr(account, "is_authenticated", False):
        return Deny("unauthenticated")

    membership = resolver.cached_membership_of(account.pk)
    if membership is None:
        return Deny("no_tenant")

    target = describe(resource, resolver)
    if target.organization_id != membership.organization_id:
        return Deny("cross_organization")

    if membership.role == Membership.Role.OWNER:
        return ALLOW

    if membership.role == Membership.Role.ADMIN:
        return _admin_decision(target, action)

    return _functional_decision(account, target, action)


def _admin_decision(target, action: str) -> Decision:
    if target.kind == Kind.ORGANIZATION and action == DELETE:
        return Deny("admin_cannot_delete_organization")

    if action in (UPDATE, DELETE) and target.instance is not None:
        if target.kind == Kind.MEMBERSHIP and target.instance.role == Membership.Role.OWNER:
            return Deny("admin_cannot_modify_owner")
        # Only the organization's owner is an owner-kind account in it.
        if target.kind == Kind.ACCOUNT and target.instance.is_owner_kind:
            return Deny("admin_cannot_modify_owner")

    return ALLOW


def _functional_decision(account, target, action: str) -> Decision:
    instance = target.instance

    if target.kind == Kind.TASK and action == UPDATE and instance is not None:
        if instance.assigned_to_id == account.pk:
            return ALLOW
        return Deny("not_assigned")

    if action != VIEW:
        return Deny("role_not_permitted")

    if target.kind in (Kind.CLIENT, Kind.EXPENSE) or instance is None:
        return Deny("role_not_permitted")

    if target.kind == Kind.ORGANIZATION:
        return ALLOW

    if _is_assigned(account.pk, target):
        return ALLOW
    return Deny("not_assigned")


def _is_assigned(account_id: int, target) -> bool:
    instance = target.instance
    kind = target.kind

    if kind == Kind.ACCOUNT:
        return instance.pk == account_id
    if kind == Kind.MEMBERSHIP:
        return instance.user_id == account_id
    if kind == Kind.ASSIGNMENT:
        return instance.team_member_id == account_id
    if kind == Kind.TASK:
        return instance.assigned_to_id == account_id

    assignments = apps.get_model("projects", "ProjectTeamMember").objects
    if kind == Kind.PROJECT:
        return (
            assignments.filter(project_id=instance.pk, team_member_id=account_id)
            .exclude(status="removed")
            .exists()
        )
    if kind == Kind.PAYMENT:
        if instance.assignment_id is None:
            return False
        return assignments.filter(pk=instance.assignment_id, team_member_id=account_id).exists()

    return False


# =============================================================================
# View-side helpers
# =============================================================================

@dataclass(frozen=True)
class ActorContext:
    """
    The acting account and its resolved membership.

    Views build this once with resolve_actor() and pass it to commands.
    """
    user: object  # User model
    membership: MembershipInfo

    @property
    def organization_id(self) -> int:
        return self.membership.organization_id

    @property
    def role(self) -> str:
        return self.membership.role

    @property
    def is_owner(self) -> bool:
        return self.membership.role == Membership.Role.OWNER

    @property
    def is_admin(self) -> bool:
        """Owner or admin role."""
        return self.membership.is_admin

    def can(self, resource, action: str) -> bool:
        return bool(authorize(self.user, resource, action))


def resolve_actor(request) -> ActorContext:
    """
    Build the ActorContext for a request.

    Raises:
        NotAuthenticated: no authenticated user
        Unauthorized("no_tenant"): authenticated, but no active membership
    """
    user = getattr(request, "user", None)

    if not user or not user.is_authenticated:
        raise NotAuthenticated("Authentication required.")

    membership = default_resolver.cached_membership_of(user.pk)
    if membership is None:
        logger.warning(
            "Access denied: account %s has no organization",
            user.pk,
            extra={"account_id": user.pk, "reason": "no_tenant"},
        )
        raise Unauthorized("no_tenant", "You are not a member of any organization.")

    return ActorContext(user=user, membership=membership)


def require(actor: Union[ActorContext, object], resource, action: str) -> None:
    """
    Require that the actor may perform ``action`` on ``resource``.

    Accepts an ActorContext or a bare account. Raises Unauthorized on Deny.
    """
    account = actor.user if isinstance(actor, ActorContext) else actor
    decision = authorize(account, resource, action)
    if decision:
        return

    account_id: Optional[int] = getattr(account, "pk", None)
    logger.warning(
        "Access denied: account %s %s %s (%s)",
        account_id,
        action,
        type(resource).__name__,
        decision.reason,
        extra={"account_id": account_id, "action": action, "reason": decision.reason},
    )
    raise Unauthorized(decision.reason)
