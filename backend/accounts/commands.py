# accounts/commands.py
"""
Command layer for accounts and memberships.

All identity and membership mutations go through these commands:
- Owner sign-up (account + organization + owner membership)
- Sign-in at a surface (owner or team)
- Team member creation
- Membership updates and deactivation

Commands return a CommandResult instead of raising for expected failures,
so views can translate them to HTTP in one place.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.contrib.auth import authenticate, get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction

from accounts.authz import ActorContext, CREATE, DELETE, UPDATE, require
from accounts.gate import OWNER_LOGIN, TEAM_LOGIN
from accounts.identity import issue_tokens
from accounts.models import Membership, Organization
from accounts.resources import Kind, ResourceRef
from accounts.rls import rls_bypass

User = get_user_model()

logger = logging.getLogger(__name__)


class CommandResult:
    """
    Outcome of a command.

    ``code`` classifies failures for the API layer:
    "validation", "not_found", "consistency", "invalid_credentials",
    "account_kind_mismatch".
    """

    def __init__(self, success: bool, data=None, error: str = None, code: str = None):
        self.success = success
        self.data = data
        self.error = error
        self.code = code

    def __bool__(self):
        return self.success

    def __repr__(self):
        if self.success:
            return f"CommandResult.ok({self.data!r})"
        return f"CommandResult.fail({self.error!r}, code={self.code!r})"

    @classmethod
    def ok(cls, data=None):
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: str = "validation", data=None):
        return cls(success=False, error=error, code=code, data=data)


SIGN_IN_SURFACES = {
    User.AccountKind.OWNER: OWNER_LOGIN,
    User.AccountKind.TEAM_MEMBER: TEAM_LOGIN,
}

ASSIGNABLE_ROLES = [r for r in Membership.Role.values if r != Membership.Role.OWNER]


def _validate_password(password: str):
    if not password or len(password) < 8:
        return "Password must be at least 8 characters."
    return None


def _parse_salary(value):
    if value in (None, ""):
        return None, None
    try:
        salary = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None, "Monthly salary must be a number."
    if not salary.is_finite() or salary < 0:
        return None, "Monthly salary must be zero or positive."
    return salary.quantize(Decimal("0.01")), None


# =============================================================================
# Sign-up and sign-in
# =============================================================================

@transaction.atomic
def register_owner(
    email: str,
    password: str,
    organization_name: str,
    name: str = "",
    currency: str = "INR",
) -> CommandResult:
    """
    Register a new owner account with its organization.

    This is the ONLY way to create an owner-kind account. It atomically
    creates the account, the organization it owns, and the owner
    membership linking them.

    Returns:
        CommandResult with {"user", "organization", "membership"}
    """
    email = (email or "").lower().strip()

    with rls_bypass():
        if not email:
            return CommandResult.fail("Email is required.")
        if User.objects.filter(email=email).exists():
            return CommandResult.fail(f"User with email '{email}' already exists.")

        if not organization_name or not organization_name.strip():
            return CommandResult.fail("Organization name is required.")

        error = _validate_password(password)
        if error:
            return CommandResult.fail(error)

        currency = (currency or "INR").upper().strip()
        if len(currency) != 3:
            return CommandResult.fail("Currency must be a 3-letter code.")

        user = User.objects.create_user(
            email=email,
            password=password,
            name=(name or "").strip(),
            account_kind=User.AccountKind.OWNER,
        )
        organization = Organization.objects.create(
            name=organization_name.strip(),
            owner=user,
            currency=currency,
        )
        membership = Membership.objects.create(
            user=user,
            organization=organization,
            role=Membership.Role.OWNER,
        )

    logger.info(
        "Owner registered: account %s, organization %s",
        user.pk,
        organization.pk,
        extra={"account_id": user.pk, "organization_id": organization.pk},
    )
    return CommandResult.ok({
        "user": user,
        "organization": organization,
        "membership": membership,
    })


def sign_in(email: str, password: str, surface: str) -> CommandResult:
    """
    Check credentials presented at a sign-in surface.

    ``surface`` is the account kind the surface serves. An account of the
    other kind gets code "account_kind_mismatch" with the entry point it
    should use in ``data["redirect"]``; no tokens are issued for it.

    Returns:
        CommandResult with the token payload from issue_tokens()
    """
    if surface not in SIGN_IN_SURFACES:
        raise ValueError(f"Unknown sign-in surface: {surface}")

    email = (email or "").lower().strip()
    with rls_bypass():
        user = authenticate(username=email, password=password)

    if user is None:
        return CommandResult.fail("Invalid email or password.", code="invalid_credentials")

    if user.account_kind != surface:
        logger.warning(
            "Sign-in at %s surface rejected for %s account %s",
            surface,
            user.account_kind,
            user.pk,
            extra={"account_id": user.pk, "reason": "account_kind_mismatch"},
        )
        return CommandResult.fail(
            "account_kind_mismatch",
            code="account_kind_mismatch",
            data={"redirect": SIGN_IN_SURFACES[user.account_kind]},
        )

    tokens = issue_tokens(user)
    tokens["user"] = user
    return CommandResult.ok(tokens)


# =============================================================================
# Team members
# =============================================================================

@transaction.atomic
def create_team_member(
    actor: ActorContext,
    email: str,
    name: str,
    password: str,
    role: str,
    monthly_salary=None,
    notes: str = "",
) -> CommandResult:
    """
    Create a team-member account with a membership in the actor's
    organization.

    The account kind is set explicitly to team_member here and never
    derived again afterwards.

    Returns:
        CommandResult with {"user", "membership"}
    """
    require(actor, ResourceRef(Kind.MEMBERSHIP, actor.organization_id), CREATE)

    email = (email or "").lower().strip()
    if not email:
        return CommandResult.fail("Email is required.")
    if User.objects.filter(email=email).exists():
        return CommandResult.fail(f"User with email '{email}' already exists.")

    if role not in ASSIGNABLE_ROLES:
        return CommandResult.fail(f"Invalid role. Must be one of: {ASSIGNABLE_ROLES}")

    error = _validate_password(password)
    if error:
        return CommandResult.fail(error)

    salary, error = _parse_salary(monthly_salary)
    if error:
        return CommandResult.fail(error)

    user = User.objects.create_user(
        email=email,
        password=password,
        name=(name or "").strip(),
        account_kind=User.AccountKind.TEAM_MEMBER,
    )
    membership = Membership.objects.create(
        user=user,
        organization_id=actor.organization_id,
        role=role,
        monthly_salary=salary,
        notes=notes or "",
    )

    logger.info(
        "Team member %s created in organization %s as %s",
        user.pk,
        actor.organization_id,
        role,
        extra={"account_id": user.pk, "organization_id": actor.organization_id},
    )
    return CommandResult.ok({"user": user, "membership": membership})


@transaction.atomic
def update_membership(
    actor: ActorContext,
    membership: Membership,
    role: str = None,
    monthly_salary=...,
    notes: str = None,
) -> CommandResult:
    """
    Change a membership's role, salary or notes.

    Omitted arguments are left alone; ``monthly_salary=None`` clears it.
    The owner role is never assigned here.
    """
    require(actor, membership, UPDATE)

    update_fields = ["updated_at"]

    if role is not None and role != membership.role:
        if membership.role == Membership.Role.OWNER:
            return CommandResult.fail("The owner's role cannot be changed.")
        if role not in ASSIGNABLE_ROLES:
            return CommandResult.fail(f"Invalid role. Must be one of: {ASSIGNABLE_ROLES}")
        membership.role = role
        update_fields.append("role")

    if monthly_salary is not ...:
        salary, error = _parse_salary(monthly_salary)
        if error:
            return CommandResult.fail(error)
        membership.monthly_salary = salary
        update_fields.append("monthly_salary")

    if notes is not None:
        membership.notes = notes
        update_fields.append("notes")

    try:
        membership.save(update_fields=update_fields)
    except ValidationError as exc:
        return CommandResult.fail("; ".join(exc.messages))

    return CommandResult.ok(membership)


@transaction.atomic
def deactivate_membership(actor: ActorContext, membership: Membership) -> CommandResult:
    """
    Deactivate a membership. The account keeps existing but resolves to
    "no tenant" from the next request on.
    """
    require(actor, membership, DELETE)

    if membership.role == Membership.Role.OWNER:
        return CommandResult.fail("The owner membership cannot be deactivated.")

    if not membership.is_active:
        return CommandResult.fail("Membership is already inactive.")

    membership.status = Membership.Status.INACTIVE
    membership.save(update_fields=["status", "updated_at"])

    logger.info(
        "Membership %s deactivated by account %s",
        membership.pk,
        actor.user.pk,
        extra={"organization_id": membership.organization_id},
    )
    return CommandResult.ok(membership)
